"""
URL configuration for the jobs app.
"""
from django.urls import path

from . import views

urlpatterns = [
    path('api/job-status/<str:job_id>', views.job_status, name='job-status'),
]
