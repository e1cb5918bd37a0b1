"""
Shared fixtures: users, tokens, a temporary upload root and fake providers.
"""
import hashlib
from typing import List

import pytest
from django.contrib.auth.hashers import make_password

from apps.authn.jwt_validator import issue_token_pair
from apps.authn.models import User
from apps.indexing.embedder import EmbeddingClient

DIMENSIONS = 768


class FakeEmbedder:
    """
    Deterministic stand-in for EmbeddingClient.
    
    Each text maps to a fixed unit-ish vector derived from its hash, so
    identical texts always embed identically.
    """

    def __init__(self, dimensions: int = DIMENSIONS):
        self.dimensions = dimensions
        self.calls: List[List[str]] = []

    def embed(self, text: str) -> List[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        self.calls.append(list(texts))
        return [self._vector(text) for text in texts]

    def _vector(self, text: str) -> List[float]:
        digest = hashlib.sha256(text.encode('utf-8')).digest()
        return [((digest[i % len(digest)] / 255.0) - 0.5) for i in range(self.dimensions)]

    to_storage_format = staticmethod(EmbeddingClient.to_storage_format)


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def upload_root(tmp_path, settings):
    root = tmp_path / 'uploads'
    settings.UPLOAD_ROOT = root
    return root


@pytest.fixture
def user(db):
    return User.objects.create(email='alice@example.com', password_hash=make_password('s3cret-pass'))


@pytest.fixture
def other_user(db):
    return User.objects.create(email='bob@example.com', password_hash=make_password('s3cret-pass'))


def auth_header(user: User) -> dict:
    token = issue_token_pair(user).access_token
    return {'HTTP_AUTHORIZATION': f'Bearer {token}'}


@pytest.fixture
def auth_for():
    """Build Authorization headers for a user: client.get(url, **auth_for(user))."""
    return auth_header
