"""
URL patterns for the loads app.
"""
from django.urls import path, include
from rest_framework.routers import SimpleRouter
from . import views

router = SimpleRouter()
router.register(r'loads/negotiations', views.NegotiationViewSet, basename='negotiation')
router.register(r'loads', views.LoadViewSet, basename='load')

app_name = 'loads'

urlpatterns = [
    path('', include(router.urls)),
]
