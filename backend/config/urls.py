"""
URL configuration for the DocuInsight backend.
"""
from django.urls import path, include

from apps.core.health import healthz, readyz


urlpatterns = [
    # Health check endpoints (no auth)
    path('healthz', healthz, name='healthz'),
    path('readyz', readyz, name='readyz'),
    
    # API routes
    path('api/', include('apps.authn.urls')),
    path('api/docs/', include('apps.docs.urls')),
    path('api/rag/', include('apps.rag.urls')),
]
