# ============================================================================
# nmapdeck/base/__init__.py
# ============================================================================
#
# PURPOSE:
# Foundational pieces everything else imports: the application configuration
# (config.py) and logging setup that reads from it.
#
# ============================================================================
