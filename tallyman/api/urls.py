"""
Tallyman API URLs.

Include this in your project's urlpatterns:

    path('api/tallyman/', include('tallyman.api.urls')),
"""

from django.urls import path
from rest_framework.routers import DefaultRouter

from .views import AvailabilityView, CommitmentViewSet, QuoteView

router = DefaultRouter()
router.register("commitments", CommitmentViewSet)

urlpatterns = [
    path("quote/", QuoteView.as_view(), name="tallyman-quote"),
    path(
        "availability/<str:product_id>/",
        AvailabilityView.as_view(),
        name="tallyman-availability",
    ),
] + router.urls
