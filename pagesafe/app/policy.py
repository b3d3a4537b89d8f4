"""Policy file loader.

Deployments tune the sanitizer through a YAML file (`pagesafe.yaml`) instead
of code: which built-in profile to use and the values of its extension knobs.

Typical Usage:
    from pagesafe.app.policy import PolicyFile
    engine = SanitizerEngine(PolicyFile().build())
"""

import logging
import os
from typing import Optional

import yaml
from pydantic import ValidationError

from pagesafe.app.config import PolicyOptions, settings
from pagesafe.engines.rules import POLICY_PROFILES, Policy

logger = logging.getLogger("pagesafe.policy")

DEFAULT_PROFILE = "rich-text"


class PolicyFile:
    """A wrapper around the YAML policy file enforcing default behaviors.

    Missing or invalid configuration falls back to the secure defaults
    instead of failing, so a bad deploy can never disable sanitization.
    """

    def __init__(self, config_path: Optional[str] = None):
        """Initializes the loader.

        Args:
            config_path (str, optional): Path to the YAML file. Defaults to
                `settings.POLICY_FILE`.
        """
        self.config_path = config_path or settings.POLICY_FILE
        self._config = {}
        self.reload()

    def reload(self):
        """Loads or reloads the configuration from disk."""
        if not os.path.exists(self.config_path):
            logger.warning(f"⚠️ Policy file not found at {self.config_path}. Using Defaults.")
            self._config = self._default_config()
            return

        try:
            with open(self.config_path, "r") as f:
                loaded = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.critical(f"❌ Failed to load sanitizer policy: {e}")
            self._config = self._default_config()
            return

        if not isinstance(loaded, dict):
            logger.critical(f"❌ Policy file {self.config_path} is not a mapping. Using Defaults.")
            self._config = self._default_config()
            return

        self._config = loaded
        logger.info(f"✅ Sanitizer policy loaded from {self.config_path}")

    def _default_config(self):
        """Returns the hardcoded 'Safe Mode' configuration."""
        return {
            "profile": DEFAULT_PROFILE,
            "sanitization": {},
        }

    @property
    def profile(self) -> str:
        """Name of the built-in policy to build ("rich-text" or "comments")."""
        name = self._config.get("profile", DEFAULT_PROFILE)
        if name not in POLICY_PROFILES:
            logger.warning(f"⚠️ Unknown policy profile {name!r}. Using {DEFAULT_PROFILE!r}.")
            return DEFAULT_PROFILE
        return name

    @property
    def options(self) -> PolicyOptions:
        """Validated policy knobs; invalid values fall back to defaults."""
        section = self._config.get("sanitization") or {}
        if not isinstance(section, dict):
            logger.critical("❌ 'sanitization' section must be a mapping. Using Defaults.")
            return PolicyOptions()
        try:
            return PolicyOptions(**section)
        except ValidationError as e:
            logger.critical(f"❌ Invalid sanitization options: {e}")
            return PolicyOptions()

    def build(self) -> Policy:
        """Builds the immutable policy described by the file."""
        return POLICY_PROFILES[self.profile](self.options)
