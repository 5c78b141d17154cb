# ============================================================================
# nmapdeck/toolkit/__init__.py
# Toolkit Package - nmap Integration Layer
# ============================================================================
#
# PURPOSE:
# Everything that knows about nmap itself, kept free of I/O where possible:
#
# - **args.py**: scan type + options -> nmap flag list
# - **targets.py**: free-text target field -> discrete targets
# - **diagnostics.py**: "is docker up and is nmap installed?" probe
#
# ============================================================================
