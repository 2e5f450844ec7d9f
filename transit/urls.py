from django.urls import path
from .views import (
    BusLocationsView, RecommendRouteView, ReportView, RouteDetailView,
    RouteListView, StopListView,
)

app_name = "transit"

urlpatterns = [
    path("api/recommend-route/", RecommendRouteView.as_view(), name="recommend-route"),
    path("api/stops/", StopListView.as_view(), name="stop-list"),
    path("api/routes/", RouteListView.as_view(), name="route-list"),
    path("api/routes/<str:route_id>/", RouteDetailView.as_view(), name="route-detail"),
    path("api/bus-locations/", BusLocationsView.as_view(), name="bus-locations"),
    path("api/reports/", ReportView.as_view(), name="reports"),
]
