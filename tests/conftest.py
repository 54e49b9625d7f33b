import importlib.util
import json
import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
LAYER_DIR = ROOT / "layers" / "shared_utils"
FUNCTIONS_DIR = ROOT / "functions" / "wedding-reel"
if str(LAYER_DIR) not in sys.path:
    sys.path.insert(0, str(LAYER_DIR))

os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
os.environ.setdefault("AWS_REGION", "us-east-1")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("AI_POLL_INTERVAL_SECONDS", "0")
os.environ.setdefault("POWERTOOLS_LOG_LEVEL", "WARNING")


def _load(relative_dir: str, module_name: str = "app"):
    directory = FUNCTIONS_DIR / relative_dir
    if str(directory) not in sys.path:
        sys.path.insert(0, str(directory))
    unique_name = f"{relative_dir.replace('/', '_').replace('-', '_')}_{module_name}"
    if unique_name in sys.modules:
        return sys.modules[unique_name]
    spec = importlib.util.spec_from_file_location(unique_name, directory / f"{module_name}.py")
    module = importlib.util.module_from_spec(spec)
    sys.modules[unique_name] = module
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def load_function():
    """Import a handler module (functions/wedding-reel/<dir>/app.py) by path."""
    return _load


@pytest.fixture
def make_event():
    def _make(body=None, user_id=None, email=None, method="POST", origin="http://localhost:5173", **extra):
        event = {
            "httpMethod": method,
            "headers": {"origin": origin} if origin else {},
            "body": json.dumps(body) if body is not None else None,
            "requestContext": {},
        }
        if user_id:
            claims = {"sub": user_id}
            if email:
                claims["email"] = email
            event["requestContext"]["authorizer"] = {"claims": claims}
        event.update(extra)
        return event
    return _make


def response_body(response):
    return json.loads(response["body"])


@pytest.fixture
def body_of():
    return response_body
