"""
URL patterns for the accounts app.
"""
from django.urls import path, include
from rest_framework.routers import SimpleRouter
from . import views

router = SimpleRouter()
router.register(r'shippers', views.ShipperClientViewSet, basename='shipper-client')

app_name = 'accounts'

urlpatterns = [
    path('auth/register/internal/', views.register_internal, name='register-internal'),
    path('auth/register/shipper/', views.register_shipper, name='register-shipper'),
    path('auth/register/driver/', views.register_driver, name='register-driver'),
    path('auth/login/internal/', views.login_internal, name='login-internal'),
    path('auth/login/shipper/', views.login_shipper, name='login-shipper'),
    path('auth/login/driver/', views.login_driver, name='login-driver'),
    path('auth/refresh/', views.refresh_token, name='refresh'),
    path('auth/me/', views.me, name='me'),
    path('auth/change-password/', views.change_password, name='change-password'),
    path('auth/forgot-password/', views.forgot_password, name='forgot-password'),
    path('auth/reset-password/', views.reset_password, name='reset-password'),
    path('auth/logout/', views.logout, name='logout'),
    path('', include(router.urls)),
]
