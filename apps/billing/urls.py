"""
URL patterns for the billing app.
"""
from django.urls import path, include
from rest_framework.routers import SimpleRouter
from . import views

router = SimpleRouter()
router.register(r'invoices', views.InvoiceViewSet, basename='invoice')
router.register(r'settlements', views.SettlementViewSet, basename='settlement')

app_name = 'billing'

urlpatterns = [
    path('', include(router.urls)),
]
