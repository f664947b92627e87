"""Signing and verification of released resources.

Contracts only know how to walk their resources; the cryptography is delegated
to a :class:`Signer` or :class:`Verifier` callable.  The bound
``CosignAttestation.sign`` and ``CosignAttestation.verify`` methods fulfil
those roles by invoking the ``cosign`` binary.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Union

from .errors import AttestationError
from .settings import get_settings

logger = logging.getLogger(__name__)

__all__ = ["CosignAttestation", "Signer", "Verifier"]


class Signer(Protocol):
    """Writes a detached signature of ``payload`` to ``signature``."""

    def __call__(self, payload: Path, signature: Path) -> None:
        ...


class Verifier(Protocol):
    """Checks ``blob_ref`` against ``signature_ref``, raising on mismatch."""

    def __call__(self, blob_ref: str, signature_ref: str) -> None:
        ...


class CosignAttestation:
    """Sign and verify blobs with ``cosign sign-blob`` / ``cosign verify-blob``.

    Args:
        key: Private key (signing) or public key reference (verification).
            Anything cosign accepts as ``--key`` works, including KMS URIs.
        binary: cosign executable; defaults to the ``cosign_binary`` setting.
    """

    def __init__(self, key: Union[str, Path], *, binary: Optional[str] = None) -> None:
        if not str(key):
            raise AttestationError("a key reference is required")
        self.key = str(key)
        self.binary = binary or get_settings().cosign_binary

    def _run(self, arguments: Sequence[str]) -> subprocess.CompletedProcess:
        executable = shutil.which(self.binary)
        if executable is None:
            raise AttestationError(f"{self.binary!r} executable not found on PATH")
        command: List[str] = [executable, *arguments]
        env = dict(os.environ)
        env.setdefault("COSIGN_YES", "true")
        try:
            return subprocess.run(command, check=True, capture_output=True, text=True, env=env)
        except subprocess.CalledProcessError as exc:
            stderr = (exc.stderr or "").strip()
            raise AttestationError(f"{arguments[0]} failed ({exc.returncode}): {stderr}") from exc

    def sign(self, payload: Path, signature: Path) -> None:
        logger.info(
            "# Signing resource %s on %s...",
            payload,
            signature,
            extra={"stage": "sign", "filename": str(payload)},
        )
        self._run(
            [
                "sign-blob",
                "--key",
                self.key,
                "--output-signature",
                str(signature),
                "--tlog-upload=false",
                str(payload),
            ]
        )

    def verify(self, blob_ref: str, signature_ref: str) -> None:
        logger.info(
            "# Verifying resource %s against signature %s...",
            blob_ref,
            signature_ref,
            extra={"stage": "verify", "filename": blob_ref},
        )
        self._run(
            [
                "verify-blob",
                "--key",
                self.key,
                "--signature",
                signature_ref,
                "--insecure-ignore-tlog=true",
                blob_ref,
            ]
        )
