"""
URL patterns for the pod app.
"""
from django.urls import path, include
from rest_framework.routers import SimpleRouter
from . import views

router = SimpleRouter()
router.register(r'pod', views.PodViewSet, basename='pod')

app_name = 'pod'

urlpatterns = [
    path('', include(router.urls)),
]
