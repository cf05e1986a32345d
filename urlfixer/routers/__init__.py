"""
FastAPI routers grouped by extension point (URL generation, upload lifecycle).

Each file inside this package exposes an APIRouter that is included in the
main application (app.py).
"""
