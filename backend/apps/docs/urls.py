"""
URL configuration for the docs app.
"""
from django.urls import path

from . import views

urlpatterns = [
    path('upload/pdf', views.upload_pdf, name='upload-pdf'),
    path('api/get-pdf-preview-url', views.preview_url, name='pdf-preview-url'),
    path('api/documents/<path:public_id>', views.delete_document, name='delete-document'),
    path('uploads/<path:path>', views.serve_upload, name='uploads'),
]
