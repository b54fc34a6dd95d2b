# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
# Each module defines a FastAPI APIRouter for a specific feature:
#   - access_keys.py: Access key management (list, create, update, delete)
#   - completions.py: Chat completions (+ OpenAI-style alias path)
#   - models.py: Supported model catalogue
#   - usage.py: Current-month usage totals
#   - deps.py: Shared dependencies (services, caller identity, bearer auth)
# =============================================================================
