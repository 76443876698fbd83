"""
Cases app URL configuration.

All routes are registered under the ``/api/cases/`` prefix.

Route Hierarchy
---------------
  /api/cases/                              → list (staff) / create (public intake)
  /api/cases/{id}/                         → snapshot

  ── Admin @actions ───────────────────────────────────────────────
  POST /api/cases/{id}/begin-review/
  POST /api/cases/{id}/approve/
  POST /api/cases/{id}/reject/
  POST /api/cases/{id}/schedule/

  ── Psychologist @actions ────────────────────────────────────────
  POST /api/cases/{id}/notes/               → draft or submit
  POST /api/cases/{id}/respond-dispute/

  ── Reporter @actions (code + e-mail, no account) ────────────────
  POST /api/cases/track/
  POST /api/cases/feedback/                 → confirm or dispute

  GET  /api/cases/{id}/audit-trail/
"""

from rest_framework.routers import DefaultRouter

from .views import CaseViewSet

router = DefaultRouter()
router.register(
    prefix=r"cases",
    viewset=CaseViewSet,
    basename="case",
)

urlpatterns = router.urls
