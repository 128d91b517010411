"""Shared fixtures: sample source trees, endpoints and a fast-retry config."""

import textwrap
from pathlib import Path
from typing import Dict, List

import pytest

from scanners.base import (
    EndpointCandidate,
    HttpMethod,
    InputKind,
    Language,
    Parameter,
    ParamLocation,
    RawFragment,
    SourceLocation,
)
from scanners.normalizer import Endpoint, Normalizer
from summarizer.config import PipelineConfig


FLASK_APP = '''
from flask import Flask

app = Flask(__name__)


@app.route("/users/<int:user_id>", methods=["GET", "DELETE"])
def user(user_id):
    return get_user(user_id)


@app.route("/health")
def health():
    return "ok"
'''

EXPRESS_APP = '''
const express = require('express');
const app = express();
const router = express.Router();

router.get('/users/:userId', getUser);
router.post('/users', auth, createUser);

app.use('/api', router);
'''

GIN_APP = '''
package main

func main() {
    r := gin.Default()
    v1 := r.Group("/v1")
    v1.GET("/orders/:id", getOrder)
}
'''


def write_tree(root: Path, files: Dict[str, str]) -> Path:
    for rel, content in files.items():
        fp = root / rel
        fp.parent.mkdir(parents=True, exist_ok=True)
        fp.write_text(textwrap.dedent(content), encoding="utf-8")
    return root


def fragment(text: str, name: str = "app.py", kind: InputKind = InputKind.SOURCE_TREE) -> RawFragment:
    return RawFragment(text=textwrap.dedent(text), location=SourceLocation(name, 1), kind=kind)


def candidate(
    method: HttpMethod,
    path: str,
    file_path: str = "app.py",
    line: int = 1,
    parameters: List[Parameter] = None,
    handler: str = None,
    framework: str = "Flask",
) -> EndpointCandidate:
    return EndpointCandidate(
        method=method,
        path_template=path,
        location=SourceLocation(file_path, line),
        handler_name=handler,
        parameters=parameters or [],
        framework=framework,
        language=Language.PYTHON,
        context=[f"def handler_{line}():", "    return {}"],
    )


def make_endpoints(count: int, method: HttpMethod = HttpMethod.GET) -> List[Endpoint]:
    candidates = [
        candidate(method, f"/items{i}/{{id}}", line=i + 1,
                  parameters=[Parameter("id", ParamLocation.PATH, None, True)])
        for i in range(count)
    ]
    return Normalizer().normalize(candidates)


@pytest.fixture
def sample_tree(tmp_path):
    return write_tree(tmp_path / "project", {
        "app.py": FLASK_APP,
        "web/server.js": EXPRESS_APP,
        "cmd/main.go": GIN_APP,
        "node_modules/lib/index.js": "app.get('/ignored', handler);\n",
        "README.md": "app.get('/not-source', handler);\n",
    })


@pytest.fixture
def fast_config(tmp_path):
    """Mock backend, tmp cache, near-zero backoff."""
    return PipelineConfig(
        llm_provider="mock",
        cache_dir=str(tmp_path / "cache"),
        backoff_base=0.001,
        backoff_max=0.01,
        backoff_jitter=0.0,
        request_timeout=5.0,
        run_timeout=30.0,
    )
