"""
Authentication URL routes.
"""
from django.urls import path

from . import views

urlpatterns = [
    path('health', views.health, name='health'),
    path('auth/register', views.register, name='auth-register'),
    path('auth/login', views.login, name='auth-login'),
    path('auth/refresh', views.refresh, name='auth-refresh'),
    path('auth/me', views.me, name='auth-me'),
]
