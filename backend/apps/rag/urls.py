"""
RAG URL routing.
"""
from django.urls import path

from . import views

urlpatterns = [
    path('api/summarize', views.summarize, name='summarize'),
    path('chat', views.chat, name='chat'),
]
