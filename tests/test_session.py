import logging
import os

import pytest
from filelock import FileLock

from upscaler.errors import SessionLockConflict
from upscaler.session import PROFILE_LOCK_NAME, acquire_profile_lock, cleanup_profile_locks


def test_profile_lock_is_exclusive(tmp_path):
    holder = FileLock(str(tmp_path / PROFILE_LOCK_NAME))
    holder.acquire()
    try:
        with pytest.raises(SessionLockConflict):
            acquire_profile_lock(str(tmp_path))
    finally:
        holder.release()


def test_profile_lock_acquired_when_free(tmp_path):
    lock = acquire_profile_lock(str(tmp_path))
    try:
        assert lock.is_locked
    finally:
        lock.release()


def test_cleanup_removes_only_chromium_singletons(tmp_path):
    for name in ("SingletonLock", "SingletonSocket", "SingletonCookie", "Preferences"):
        (tmp_path / name).write_text("")

    removed = cleanup_profile_locks(str(tmp_path), logging.getLogger("test"))

    assert removed == 3
    assert os.listdir(tmp_path) == ["Preferences"]
