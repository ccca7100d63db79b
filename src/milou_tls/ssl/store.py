"""On-disk certificate/key pair storage.

Owns the path convention (``<base>/<name>.crt`` + ``<base>/<name>.key``),
the permission policy (certificate 0644, key 0600, directory 0755) and the
atomic replacement discipline:

1. both new files are written to temporary files in the target
   directory, flushed, fsynced and chmodded;
2. the current certificate is hard-linked to a ``.prev`` sidecar and a
   journal naming the temporary files is written;
3. the certificate is renamed into place, then the key;
4. the journal and sidecar are removed.

If the key rename raises, the certificate rename is rolled back from the
sidecar.  If the process dies between the two renames, the journal is
still on disk and :meth:`CertificateStore.recover` restores the previous
pair.

Consumers outside milou-tls (the reverse proxy) only ever see whole files
thanks to the renames.  Between milou-tls processes the pair is guarded by
an advisory ``flock`` on ``.<name>.crt.lock``: writes, recovery, removal
and orphan cleanup hold it exclusively, reads hold it shared.  A reader
never recovers while another process holds the lock, so a live write is
never mistaken for an interrupted one.

Absence of files is a normal state: reads return ``None`` rather than
raising.
"""

from __future__ import annotations

import contextlib
import fcntl
import json
import logging
import os
import shutil
import stat
import tempfile
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any

from milou_tls.core.errors import CertificateError
from milou_tls.core.types import ValidationStatus

if TYPE_CHECKING:
    from collections.abc import Iterator

    from milou_tls.config.settings import SslSettings

log = logging.getLogger(__name__)

CERT_MODE = 0o644
KEY_MODE = 0o600
DIR_MODE = 0o755

LOCK_TIMEOUT_SECONDS = 10.0
_LOCK_POLL_SECONDS = 0.05

_BACKUP_DIRNAME = "backup"
_TIMESTAMP_FMT = "%Y%m%d_%H%M%S"


def _rename(src: Path, dst: Path) -> None:
    os.replace(src, dst)


def _fsync_dir(directory: Path) -> None:
    """Flush directory entries so renames survive a crash (POSIX only)."""
    if not hasattr(os, "O_DIRECTORY"):
        return
    try:
        fd = os.open(directory, os.O_RDONLY | os.O_DIRECTORY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        log.debug("fsync of directory %s not supported", directory)
    finally:
        os.close(fd)


def _classify_os_error(exc: OSError, path: Path, action: str) -> CertificateError:
    if isinstance(exc, PermissionError):
        return CertificateError(
            ValidationStatus.PERMISSION_DENIED,
            f"permission denied while trying to {action} {path}",
        )
    if isinstance(exc, IsADirectoryError):
        return CertificateError(
            ValidationStatus.INVALID_FORMAT,
            f"{path} is a directory, not a PEM file",
        )
    return CertificateError(
        ValidationStatus.INVALID_FORMAT,
        f"cannot {action} {path}: {exc.strerror or exc}",
    )


def _flock(fh: IO[str], operation: int, timeout: float) -> bool:
    """Take *operation* on *fh*, polling until *timeout* seconds have passed."""
    deadline = time.monotonic() + timeout
    while True:
        try:
            fcntl.flock(fh.fileno(), operation | fcntl.LOCK_NB)
        except BlockingIOError:
            if time.monotonic() >= deadline:
                return False
            time.sleep(_LOCK_POLL_SECONDS)
        else:
            return True


def _world_writable(mode: int) -> bool:
    return bool(mode & stat.S_IWOTH)


class CertificateStore:
    """Read and atomically replace one certificate/key pair on disk."""

    def __init__(
        self,
        cert_path: str | Path,
        key_path: str | Path,
        *,
        backup_dir: str | Path | None = None,
        info_path: str | Path | None = None,
        lock_timeout: float = LOCK_TIMEOUT_SECONDS,
    ) -> None:
        self._cert_path = Path(cert_path)
        self._key_path = Path(key_path)
        if self._cert_path == self._key_path:
            msg = "certificate and key must be stored in different files"
            raise ValueError(msg)
        base = self._cert_path.parent
        self._backup_dir = Path(backup_dir) if backup_dir else base / _BACKUP_DIRNAME
        self._info_path = (
            Path(info_path) if info_path else base / f"{self._cert_path.stem}.info.json"
        )
        self._lock_timeout = lock_timeout

    @classmethod
    def for_base(cls, base_dir: str | Path, name: str = "milou") -> CertificateStore:
        """Store following the ``<base>/<name>.crt`` / ``.key`` convention."""
        base = Path(base_dir)
        return cls(base / f"{name}.crt", base / f"{name}.key")

    @classmethod
    def from_settings(cls, settings: SslSettings) -> CertificateStore:
        return cls(
            settings.cert_file,
            settings.key_file,
            backup_dir=Path(settings.base_dir) / _BACKUP_DIRNAME,
            info_path=Path(settings.base_dir) / f"{settings.name}.info.json",
        )

    # -- paths ----------------------------------------------------------------

    @property
    def cert_path(self) -> Path:
        return self._cert_path

    @property
    def key_path(self) -> Path:
        return self._key_path

    @property
    def backup_dir(self) -> Path:
        return self._backup_dir

    @property
    def info_path(self) -> Path:
        return self._info_path

    @property
    def lock_path(self) -> Path:
        return self._cert_path.with_name(f".{self._cert_path.name}.lock")

    @property
    def _journal_path(self) -> Path:
        return self._cert_path.with_name(f".{self._cert_path.name}.journal")

    @property
    def _prev_path(self) -> Path:
        return self._cert_path.with_name(f".{self._cert_path.name}.prev")

    @staticmethod
    def _check(predicate: str, path: Path) -> bool:
        """``exists`` / ``is_file`` / ``is_dir`` that raise instead of hiding EACCES."""
        try:
            mode = path.stat().st_mode
        except (FileNotFoundError, NotADirectoryError):
            return False
        except OSError as exc:
            raise _classify_os_error(exc, path, "access") from None
        if predicate == "is_file":
            return stat.S_ISREG(mode)
        if predicate == "is_dir":
            return stat.S_ISDIR(mode)
        return True

    def exists(self) -> bool:
        """``True`` when both halves of the pair are on disk."""
        self._recover_for_read()
        with self._lock(exclusive=False):
            return self._check("is_file", self._cert_path) and self._check(
                "is_file", self._key_path
            )

    def any_exists(self) -> bool:
        self._recover_for_read()
        with self._lock(exclusive=False):
            return self._any_exists()

    def _any_exists(self) -> bool:
        return self._check("exists", self._cert_path) or self._check("exists", self._key_path)

    # -- locking --------------------------------------------------------------

    def _open_lock(self, *, required: bool) -> IO[str] | None:
        path = self.lock_path
        try:
            return open(path, "a", encoding="utf-8")  # noqa: PTH123, SIM115
        except OSError as exc:
            if required:
                raise _classify_os_error(exc, path, "lock") from None
            if not isinstance(exc, PermissionError):
                return None

        # Read-only directory: share an existing lock file or go without.
        try:
            return open(path, encoding="utf-8")  # noqa: PTH123, SIM115
        except OSError:
            log.debug("Accessing %s without a lock", self._cert_path.parent)
            return None

    @contextlib.contextmanager
    def _lock(
        self,
        *,
        exclusive: bool,
        timeout: float | None = None,
        required: bool | None = None,
    ) -> Iterator[bool]:
        """Hold the pair's advisory lock; yields whether it is actually held.

        Exclusive locks are required by default: failing to take one within
        *timeout* raises ``CertificateError(PERMISSION_DENIED)``.  A lock
        that is not required is given up and the caller proceeds unlocked.
        """
        if timeout is None:
            timeout = self._lock_timeout
        if required is None:
            required = exclusive
        fh = self._open_lock(required=required)
        if fh is None:
            yield False
            return

        with fh:
            held = _flock(fh, fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH, timeout)
            if not held and required:
                raise CertificateError(
                    ValidationStatus.PERMISSION_DENIED,
                    f"{self.lock_path} is held by another process",
                )
            try:
                yield held
            finally:
                if held:
                    fcntl.flock(fh.fileno(), fcntl.LOCK_UN)

    # -- reading --------------------------------------------------------------

    def _read_file(self, path: Path) -> bytes | None:
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise _classify_os_error(exc, path, "read") from None

    def read_pair(self) -> tuple[bytes | None, bytes | None]:
        """Return ``(cert_bytes, key_bytes)`` read under one shared lock.

        Either element is ``None`` when that file is absent.

        Raises
        ------
        CertificateError
            ``PERMISSION_DENIED`` or ``INVALID_FORMAT``.

        """
        self._recover_for_read()
        with self._lock(exclusive=False):
            return self._read_file(self._cert_path), self._read_file(self._key_path)

    def read_certificate(self) -> bytes | None:
        """Return the certificate bytes, or ``None`` when absent."""
        self._recover_for_read()
        with self._lock(exclusive=False):
            return self._read_file(self._cert_path)

    def read_key(self) -> bytes | None:
        """Return the private key bytes, or ``None`` when absent."""
        self._recover_for_read()
        with self._lock(exclusive=False):
            return self._read_file(self._key_path)

    # -- writing --------------------------------------------------------------

    def _write_temp(self, target: Path, data: bytes, mode: int) -> Path:
        fd, name = tempfile.mkstemp(
            prefix=f".{target.name}.",
            suffix=".tmp",
            dir=target.parent,
        )
        tmp = Path(name)
        try:
            with os.fdopen(fd, "wb") as fh:
                os.fchmod(fh.fileno(), mode)
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise
        return tmp

    def _write_journal(self, tmp_cert: Path, tmp_key: Path, has_prev: bool) -> None:
        payload = {
            "tmp_cert": tmp_cert.name,
            "tmp_key": tmp_key.name,
            "has_prev": has_prev,
        }
        with open(self._journal_path, "w", encoding="utf-8") as fh:  # noqa: PTH123
            json.dump(payload, fh)
            fh.flush()
            os.fsync(fh.fileno())

    def _snapshot_previous(self) -> bool:
        """Hard-link the live certificate to the ``.prev`` sidecar."""
        self._prev_path.unlink(missing_ok=True)
        if not self._cert_path.exists():
            return False
        try:
            os.link(self._cert_path, self._prev_path)
        except OSError:
            shutil.copy2(self._cert_path, self._prev_path)
        return True

    def write(self, cert_pem: bytes, key_pem: bytes) -> None:
        """Atomically replace the pair with *cert_pem* / *key_pem*.

        Raises
        ------
        CertificateError
            ``PERMISSION_DENIED`` (or ``INVALID_FORMAT`` for other IO
            failures) when the pair could not be replaced, including when
            another process holds the store's lock.  The previous pair, if
            any, is left in place.

        """
        directory = self._cert_path.parent
        for path in (directory, self._key_path.parent):
            try:
                path.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
            except OSError as exc:
                raise _classify_os_error(exc, path, "create directory") from None

        with self._lock(exclusive=True):
            self._recover_locked()
            self._replace(cert_pem, key_pem)
        log.info("Certificate pair written: %s, %s", self._cert_path, self._key_path)

    def _replace(self, cert_pem: bytes, key_pem: bytes) -> None:
        directory = self._cert_path.parent
        tmp_cert: Path | None = None
        tmp_key: Path | None = None
        try:
            tmp_cert = self._write_temp(self._cert_path, cert_pem, CERT_MODE)
            tmp_key = self._write_temp(self._key_path, key_pem, KEY_MODE)
            has_prev = self._snapshot_previous()
            self._write_journal(tmp_cert, tmp_key, has_prev)
        except OSError as exc:
            for leftover in (tmp_cert, tmp_key, self._journal_path, self._prev_path):
                if leftover is not None:
                    leftover.unlink(missing_ok=True)
            raise _classify_os_error(exc, directory, "write to") from None

        try:
            _rename(tmp_cert, self._cert_path)
        except OSError as exc:
            self._discard_write(tmp_cert, tmp_key)
            raise _classify_os_error(exc, self._cert_path, "replace") from None

        try:
            _rename(tmp_key, self._key_path)
        except OSError as exc:
            log.error(
                "Key rename failed after certificate rename; rolling back %s",
                self._cert_path,
            )
            try:
                self._rollback_certificate(has_prev)
            except OSError:
                # Journal stays on disk; the next recovery retries.
                log.exception("Rollback of %s failed", self._cert_path)
            else:
                self._discard_write(tmp_cert, tmp_key)
            raise _classify_os_error(exc, self._key_path, "replace") from None

        self._commit()

    def _rollback_certificate(self, has_prev: bool) -> None:
        if has_prev:
            _rename(self._prev_path, self._cert_path)
        else:
            self._cert_path.unlink(missing_ok=True)
        _fsync_dir(self._cert_path.parent)

    def _discard_write(self, tmp_cert: Path, tmp_key: Path) -> None:
        for leftover in (tmp_cert, tmp_key, self._prev_path, self._journal_path):
            leftover.unlink(missing_ok=True)

    def _commit(self) -> None:
        _fsync_dir(self._cert_path.parent)
        if self._key_path.parent != self._cert_path.parent:
            _fsync_dir(self._key_path.parent)
        self._journal_path.unlink(missing_ok=True)
        self._prev_path.unlink(missing_ok=True)

    # -- recovery -------------------------------------------------------------

    def recover(self) -> bool:
        """Finish or undo a write that was interrupted between renames.

        Waits for the store's lock, so a write still running in another
        process completes first.  Returns ``True`` when an interrupted
        write was found.
        """
        if not self._check("exists", self._journal_path):
            return False
        with self._lock(exclusive=True):
            return self._recover_locked()

    def _recover_for_read(self) -> None:
        """Recover before a read, unless another process holds the lock."""
        if not self._check("exists", self._journal_path):
            return
        with self._lock(exclusive=True, timeout=0, required=False) as held:
            if held:
                self._recover_locked()
            else:
                log.debug("Write in progress at %s; not recovering", self._cert_path)

    def _recover_locked(self) -> bool:
        journal = self._journal_path
        if not self._check("exists", journal):
            return False

        try:
            payload = json.loads(journal.read_text(encoding="utf-8"))
            tmp_cert = self._cert_path.with_name(payload["tmp_cert"])
            tmp_key = self._key_path.with_name(payload["tmp_key"])
            has_prev = bool(payload["has_prev"])
        except (OSError, ValueError, KeyError, TypeError):
            # Journal never completed: no rename had started yet.
            log.warning("Discarding incomplete write journal %s", journal)
            journal.unlink(missing_ok=True)
            self._prev_path.unlink(missing_ok=True)
            return True

        try:
            if tmp_key.exists():
                # Key never reached its final name; undo the certificate.
                if not tmp_cert.exists():
                    self._rollback_certificate(has_prev)
                log.warning(
                    "Rolled back interrupted certificate write at %s",
                    self._cert_path,
                )
                self._discard_write(tmp_cert, tmp_key)
            else:
                log.warning(
                    "Completed interrupted certificate write at %s",
                    self._cert_path,
                )
                self._commit()
        except OSError as exc:
            raise _classify_os_error(exc, self._cert_path, "recover") from None
        return True

    def remove_orphans(self) -> int:
        """Delete temporary files left behind by interrupted writes."""
        if not self._check("is_dir", self._cert_path.parent):
            return 0
        removed = 0
        with self._lock(exclusive=True):
            self._recover_locked()
            for target in {self._cert_path, self._key_path}:
                for orphan in target.parent.glob(f".{target.name}.*.tmp"):
                    with contextlib.suppress(OSError):
                        orphan.unlink()
                        removed += 1
        if removed:
            log.info("Removed %d orphaned temporary file(s)", removed)
        return removed

    # -- maintenance ------------------------------------------------------------

    def check_key_permissions(self) -> bool:
        """Warn if the private key file is readable by group or others.

        Returns ``False`` when the permissions are too open.
        """
        try:
            mode = self._key_path.stat().st_mode
        except OSError:
            return True
        if mode & (stat.S_IRGRP | stat.S_IROTH | stat.S_IWGRP | stat.S_IWOTH):
            log.warning(
                "Private key file '%s' has overly permissive "
                "permissions (mode=%o). Recommend chmod 600.",
                self._key_path,
                stat.S_IMODE(mode),
            )
            return False
        return True

    def check_directory_permissions(self) -> bool:
        """Warn if the certificate directory or its parent is world-writable.

        Anyone able to write to either directory can swap the pair.  A
        parent with the sticky bit set (``/tmp``) only lets owners rename
        their own entries and is accepted.  Returns ``False`` when the
        certificate directory itself is world-writable.
        """
        directory = self._cert_path.parent
        try:
            mode = directory.stat().st_mode
        except OSError:
            return True
        secure = True
        if _world_writable(mode):
            log.warning(
                "SSL directory '%s' is world-writable (mode=%o). Recommend chmod %o.",
                directory,
                stat.S_IMODE(mode),
                DIR_MODE,
            )
            secure = False

        parent = directory.resolve().parent
        try:
            parent_mode = parent.stat().st_mode
        except OSError:
            return secure
        if _world_writable(parent_mode) and not parent_mode & stat.S_ISVTX:
            log.warning(
                "Parent directory '%s' of the SSL directory is world-writable (mode=%o)",
                parent,
                stat.S_IMODE(parent_mode),
            )
        return secure

    def backup(self, now: datetime | None = None) -> list[Path]:
        """Copy the live files to ``<backup_dir>/<file>.<timestamp>``.

        Returns the created backup paths (empty when nothing to back up).
        """
        self._recover_for_read()
        with self._lock(exclusive=False):
            return self._backup(now)

    def _backup(self, now: datetime | None = None) -> list[Path]:
        sources = [p for p in (self._cert_path, self._key_path) if self._check("is_file", p)]
        if not sources:
            log.debug("No certificates to back up")
            return []

        timestamp = (now or datetime.now(UTC)).strftime(_TIMESTAMP_FMT)
        try:
            self._backup_dir.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
            created = []
            for source in sources:
                target = self._backup_dir / f"{source.name}.{timestamp}"
                shutil.copy2(source, target)
                os.chmod(target, KEY_MODE if source == self._key_path else CERT_MODE)
                created.append(target)
        except OSError as exc:
            raise _classify_os_error(exc, self._backup_dir, "back up to") from None

        log.info("Backed up %d certificate file(s) to %s", len(created), self._backup_dir)
        return created

    def remove(self) -> bool:
        """Back up and delete the live pair and its metadata file.

        Returns ``True`` when anything was removed.
        """
        if not self._check("is_dir", self._cert_path.parent):
            return False
        with self._lock(exclusive=True):
            self._recover_locked()
            if not self._any_exists() and not self._check("exists", self._info_path):
                return False
            self._backup()
            removed = False
            for path in (self._cert_path, self._key_path, self._info_path):
                try:
                    path.unlink()
                    removed = True
                except FileNotFoundError:
                    continue
                except OSError as exc:
                    raise _classify_os_error(exc, path, "remove") from None
        log.info("Removed certificate pair at %s", self._cert_path.parent)
        return removed

    # -- metadata -------------------------------------------------------------

    def save_info(self, domain: str, action: str, **details: Any) -> Path:  # noqa: ANN401
        """Record what was last done to the pair in a small JSON file."""
        payload = {
            "domain": domain,
            "action": action,
            "recorded_at": datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "recorded_by": "milou-tls",
            **details,
        }
        data = json.dumps(payload, indent=2, sort_keys=True, default=str).encode("utf-8")
        try:
            self._info_path.parent.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
            tmp = self._write_temp(self._info_path, data, CERT_MODE)
            _rename(tmp, self._info_path)
        except OSError as exc:
            raise _classify_os_error(exc, self._info_path, "write") from None
        log.debug("Certificate info saved: %s for %s", action, domain)
        return self._info_path

    def load_info(self) -> dict | None:
        """Return the metadata written by :meth:`save_info`, if readable."""
        try:
            return json.loads(self._info_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError):
            log.warning("Ignoring unreadable certificate info file %s", self._info_path)
            return None

    def __repr__(self) -> str:
        return f"<CertificateStore cert={self._cert_path} key={self._key_path}>"
