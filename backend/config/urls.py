"""
URL Configuration for Incident Analyst

The retrieval engine is consumed in-process; only the admin is routed.
"""
from django.contrib import admin
from django.urls import path

urlpatterns = [
    path('admin/', admin.site.urls),
]
