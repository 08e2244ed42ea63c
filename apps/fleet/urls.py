"""
URL patterns for the fleet app.
"""
from django.urls import path, include
from rest_framework.routers import SimpleRouter
from . import views

router = SimpleRouter()
router.register(r'drivers/assignments', views.DriverAssignmentViewSet, basename='driver-assignment')
router.register(r'drivers', views.DriverViewSet, basename='driver')
router.register(r'vehicles', views.VehicleViewSet, basename='vehicle')

app_name = 'fleet'

urlpatterns = [
    path('', include(router.urls)),
]
