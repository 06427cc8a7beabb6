# Vulture whitelist file
# Framework-registered callables and schema fields vulture reports as unused.
#
# Usage: python3 -m vulture server/iispool vulture_whitelist.py

# =============================================================================
# FastAPI Route Handlers (registered via @router.get/post decorators)
# =============================================================================

health_check  # routes.py - GET /healthz
readiness_check  # routes.py - GET /readyz
restart_pool_action  # routes.py - POST /api/v1/pools/restart
stop_pool_action  # routes.py - POST /api/v1/pools/stop
lifespan  # main.py - FastAPI lifespan handler

# =============================================================================
# Click Commands (registered via @cli.command decorators)
# =============================================================================

restart_pool_command  # cli.py - iispool restart-pool
stop_pool_command  # cli.py - iispool stop-pool

# =============================================================================
# Pydantic Model Fields (accessed via JSON serialization/deserialization)
# =============================================================================

_.managed_runtime_version  # PoolStatus model field
_.managed_pipeline_mode  # PoolStatus model field
_.start_mode  # PoolStatus model field
_.error_id  # PoolActionFailure model field
_.error_type  # PoolRecordError model field
_.timestamp  # HealthResponse model field
_.model_config  # Pydantic V2 configuration attribute

# =============================================================================
# Pydantic Validators (called by Pydantic during model validation)
# =============================================================================

_._normalize_state  # PoolStatus validator

# =============================================================================
# Pydantic Config class attributes
# =============================================================================

_.env_file  # Pydantic settings configuration
_.case_sensitive  # Pydantic settings configuration

# =============================================================================
# Enum Values
# =============================================================================

_.STARTING  # PoolState value reported by IIS
_.STOPPING  # PoolState value reported by IIS
