"""Pytest configuration and fixtures for stanfix tests."""

import json
import os
from pathlib import Path

import pytest

# Set a fixed terminal width to prevent line wrapping issues in CI
# This must be set before any Rich imports
os.environ.setdefault("COLUMNS", "200")
os.environ.setdefault("LINES", "50")
# Disable Rich's terminal detection to ensure consistent output
os.environ.setdefault("TERM", "dumb")


USER_SERVICE_PHP = """<?php

namespace App\\Services;

class UserService
{
    public function getName($user)
    {
        return $user->name;
    }

    /**
     * Persist the user.
     */
    public function save(User $user): void
    {
        $this->repository->store($user);
    }
}
"""


@pytest.fixture
def user_service_php() -> str:
    """PHP source with one untyped method and one documented method."""
    return USER_SERVICE_PHP


def write_report(path: Path, messages: dict[str, list[dict]]) -> Path:
    """Write a PHPStan JSON report in the ``files`` shape."""
    data = {
        "totals": {
            "errors": 0,
            "file_errors": sum(len(entries) for entries in messages.values()),
        },
        "files": {
            file_path: {"errors": len(entries), "messages": entries}
            for file_path, entries in messages.items()
        },
        "errors": [],
    }
    path.write_text(json.dumps(data), encoding="utf-8")
    return path
