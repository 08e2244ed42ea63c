"""
URL configuration for the Freight TMS project.
"""
from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from django.conf.urls.static import static
from django.views.generic import RedirectView
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView, SpectacularSwaggerView

urlpatterns = [
    # Admin
    path('admin/', admin.site.urls),

    # API URLs
    path('api/v1/', include([
        path('', include('apps.accounts.urls')),
        path('', include('apps.fleet.urls')),
        path('', include('apps.loads.urls')),
        path('', include('apps.documents.urls')),
        path('', include('apps.pod.urls')),
        path('', include('apps.billing.urls')),
        path('', include('apps.notifications.urls')),
    ])),

    # Modern API Documentation
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/docs/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
    path('api/redoc/', SpectacularRedocView.as_view(url_name='schema'), name='redoc'),

    # Health check and signed file downloads
    path('', include('apps.core.urls')),
    path("", RedirectView.as_view(url="/api/redoc/", permanent=False)),
] + static(settings.STATIC_URL, document_root=settings.STATIC_ROOT)

# Custom error handlers
handler400 = 'apps.core.views.bad_request'
handler403 = 'apps.core.views.permission_denied'
handler404 = 'apps.core.views.page_not_found'
handler500 = 'apps.core.views.server_error'

if settings.DEBUG and 'debug_toolbar' in settings.INSTALLED_APPS:
    urlpatterns = [path('__debug__/', include('debug_toolbar.urls'))] + urlpatterns
