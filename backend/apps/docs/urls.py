"""
URL configuration for the docs app.
"""
from django.urls import path
from . import views

app_name = 'docs'

urlpatterns = [
    path('upload', views.upload_document, name='upload'),
    path('', views.list_documents, name='list'),
    path('stats', views.document_stats, name='stats'),
    path('<uuid:document_id>', views.document_detail, name='detail'),
    path('<uuid:document_id>/chunks', views.list_chunks, name='chunks'),
    path('<uuid:document_id>/chunks/<int:chunk_index>', views.get_chunk, name='chunk'),
    path('<uuid:document_id>/content', views.document_content, name='content'),
    path('<uuid:document_id>/preview', views.document_preview, name='preview'),
]
