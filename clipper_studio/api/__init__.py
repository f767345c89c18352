"""External collaborators: transcription API client and artifact stores.

WHY: The pipeline consumes transcription and storage through narrow
async interfaces. These modules are the concrete HTTP and filesystem
implementations; tests substitute fakes or httpx.MockTransport.
"""

from clipper_studio.api.storage import HttpArtifactStore, LocalArtifactStore
from clipper_studio.api.whisper import WhisperClient

__all__ = ["HttpArtifactStore", "LocalArtifactStore", "WhisperClient"]
