"""
Remote tier for playlist-sync: Cloud Firestore and Firebase Auth over REST.

Modules:
    codec: Firestore REST typed values and structured queries
    auth: Identity providers (local profile, Firebase accounts)
    firestore: Shared playlist, rating and download collections
"""

from playlist_sync.remote.auth import (
    FirebaseAuthProvider,
    Identity,
    IdentityProvider,
    LocalProfileProvider,
)
from playlist_sync.remote.firestore import FirestoreRemoteStore

__all__ = [
    "Identity",
    "IdentityProvider",
    "LocalProfileProvider",
    "FirebaseAuthProvider",
    "FirestoreRemoteStore",
]
