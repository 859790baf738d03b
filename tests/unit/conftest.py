#!/usr/bin/env python3

# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

from unittest.mock import patch

import pytest
from lightkube import Client


@pytest.fixture(autouse=True)
def offline_cluster():
    """Build lightkube Clients without a kubeconfig and fail any read no test has stubbed."""
    with patch.object(Client, "__init__", lambda self, *args, **kwargs: None):
        with patch.object(Client, "get", side_effect=AssertionError("unexpected cluster read")):
            yield
