"""
Config selector — the ``key:value`` pair used to pick environments.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from paralumi.core.errors import UsageError

# Environment YAML section that Pulumi stack config lives under
DEFAULT_NAMESPACE = "pulumiConfig"


class ConfigSelector(BaseModel):
    """An immutable ``(key, desired_value)`` pair, supplied once per run."""

    model_config = ConfigDict(frozen=True)

    key: str
    desired_value: str

    @classmethod
    def parse(cls, raw: str) -> ConfigSelector:
        """Parse a ``key:value`` string.

        Exactly one colon is expected and the key must not be empty.
        The value may be empty (matches an empty string config value).

        Raises:
            UsageError: If the string is malformed.
        """
        if raw.count(":") != 1:
            raise UsageError(
                f"config filter must look like key:value (exactly one ':'), got {raw!r}"
            )
        key, value = raw.split(":")
        key = key.strip()
        if not key:
            raise UsageError(f"config filter has an empty key: {raw!r}")
        return cls(key=key, desired_value=value.strip())

    def path(self, namespace: str = DEFAULT_NAMESPACE) -> str:
        """Scoped config path, e.g. ``pulumiConfig.tier``."""
        if not namespace:
            return self.key
        return f"{namespace}.{self.key}"

    def matches(self, value: str) -> bool:
        return value == self.desired_value

    def __str__(self) -> str:
        return f"{self.key}:{self.desired_value}"
