"""
===============================================================================
ORBITPLAN - Core Package
===============================================================================
Shared foundations for the trajectory engine.

Modules:
    constants -- Physical constants and planning defaults (SI units)
    errors    -- Typed failures (DomainError, ConvergenceError, ...)
    config    -- YAML configuration loading merged over built-in defaults
===============================================================================
"""
