"""
RAG URL routing.
"""
from django.urls import path

from apps.rag.views import (
    AskView,
    DocumentAskView,
    DocumentSearchView,
    PaginatedSearchView,
    SearchView,
)

urlpatterns = [
    path('search', SearchView.as_view(), name='rag-search'),
    path('search/paginated', PaginatedSearchView.as_view(), name='rag-search-paginated'),
    path('documents/<uuid:document_id>/search', DocumentSearchView.as_view(), name='rag-document-search'),
    path('ask', AskView.as_view(), name='rag-ask'),
    path('documents/<uuid:document_id>/ask', DocumentAskView.as_view(), name='rag-document-ask'),
]
