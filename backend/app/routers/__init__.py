# API Routers
from app.routers import auth, folios, packages, night_audit, reports, settings

__all__ = ['auth', 'folios', 'packages', 'night_audit', 'reports', 'settings']
