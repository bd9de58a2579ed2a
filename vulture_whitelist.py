# Vulture whitelist file
# This file contains false positives that vulture incorrectly flags as dead code.
# These are typically pydantic settings attributes, context manager hooks, and
# helpers reached only from the test suite.
#
# Usage: python3 -m vulture server/vcsync vulture_whitelist.py

# =============================================================================
# Pydantic model_config (ConfigDict for Pydantic v2 configuration)
# =============================================================================
_.model_config  # PresenceRecord is frozen

# =============================================================================
# Pydantic Config class attributes
# =============================================================================
Config  # config.py - Pydantic settings class
_.env_file  # Pydantic settings configuration
_.case_sensitive  # Pydantic settings configuration
_.populate_by_name  # Pydantic settings configuration
_.extra  # Pydantic settings configuration

# =============================================================================
# Report fields (read by operators in debug output and by tests)
# =============================================================================
_.collisions  # SyncReport model field
_.errors  # SyncReport model field

# =============================================================================
# Entry points and test helpers
# =============================================================================
run  # main.py - console script target (pyproject.toml [project.scripts])
reset_settings  # config.py - clears the cached settings between tests
