"""
Shared fixtures: a scripted capability that answers by pipeline stage, plus
canned model replies for a small marketing site.
"""
import json
import re

import pytest

from sitegen.core.llm_client import CompletionClient

_TASK_RE = re.compile(r"^TASK: (\S+)", re.M)
_FILE_RE = re.compile(r"writing the file '([^']+)'")


def task_of(prompt):
    m = _TASK_RE.search(prompt)
    return m.group(1) if m else ""


def file_of(prompt):
    m = _FILE_RE.search(prompt)
    return m.group(1) if m else ""


class StubCapability:
    """
    Scripted stand-in for the model. `responses` maps a task name
    (feature_analysis, plan_structure, generate_markup, ...) to a string, an
    exception instance to raise, or a callable(prompt) returning either.
    """

    def __init__(self, responses=None, default=None):
        self.responses = dict(responses or {})
        self.default = default
        self.prompts = []

    @property
    def tasks(self):
        return [task_of(p) for p in self.prompts]

    async def __call__(self, prompt, timeout, temperature=None):
        self.prompts.append(prompt)
        reply = self.responses.get(task_of(prompt), self.default)
        if callable(reply) and not isinstance(reply, BaseException):
            reply = reply(prompt)
        if isinstance(reply, BaseException):
            raise reply
        if reply is None:
            raise AssertionError(f"no scripted reply for task {task_of(prompt)!r}")
        return reply


async def _no_sleep(delay):
    return None


def make_client(capability, max_attempts=3):
    return CompletionClient(capability=capability, max_attempts=max_attempts, base_delay=0, sleep=_no_sleep)


# ----------------------------
# Canned site content
# ----------------------------
MARKETING_PAGES = ("index.html", "about.html", "contact.html")

STYLE_CSS = """:root {
  --primary-color: #2563eb;
}

body {
  margin: 0;
  font-family: sans-serif;
}

.navbar {
  display: flex;
  gap: 1rem;
}

.hero {
  padding: 4rem 2rem;
}
"""

SCRIPT_JS = """document.addEventListener('DOMContentLoaded', function () {
  const nav = document.querySelector('.navbar');
  if (nav) {
    nav.classList.add('ready');
  }
});

function showMessage(text) {
  alert(text);
}
window.showMessage = showMessage;
"""


def page_html(name):
    links = "\n".join(f'      <a href="{p}">{p[:-5].title()}</a>' for p in MARKETING_PAGES)
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <title>{name}</title>
  <link rel="stylesheet" href="styles.css">
</head>
<body>
  <nav class="navbar">
{links}
  </nav>
  <section class="hero">
    <h1>Acme</h1>
    <button onclick="showMessage('hi')">Say hi</button>
  </section>
  <script src="script.js" defer></script>
</body>
</html>
"""


FEATURES_JSON = json.dumps({
    "description": "A three-page marketing site for Acme",
    "features": ["Hero section", "Company story", "Contact form"],
    "functionality": ["Navigate between pages"],
    "uiSurfaces": ["Home page", "About page", "Contact page"],
    "dataRequirements": [],
})


def structure_json(files=None):
    if files is None:
        files = [
            {"name": "styles.css", "type": "css", "purpose": "Shared styles", "dependencies": []},
            {"name": "script.js", "type": "js", "purpose": "Navigation", "dependencies": []},
        ] + [
            {"name": page, "type": "html", "purpose": f"{page} page",
             "dependencies": ["styles.css", "script.js"],
             "linkedFiles": [p for p in MARKETING_PAGES if p != page]}
            for page in MARKETING_PAGES
        ]
    return json.dumps({
        "projectName": "Acme",
        "files": files,
        "dependencies": ["HTML5", "CSS3"],
        "navigation": {
            "type": "multi-page",
            "structure": "Top navbar",
            "routes": [{"path": "/", "file": "index.html", "title": "Home", "description": "Landing"}],
        },
        "architecture": "Static pages sharing one stylesheet",
    })


def site_responses(**overrides):
    responses = {
        "feature_analysis": FEATURES_JSON,
        "plan_structure": structure_json(),
        "generate_style": STYLE_CSS,
        "generate_behavior": SCRIPT_JS,
        "generate_markup": lambda prompt: page_html(file_of(prompt)),
    }
    responses.update(overrides)
    return responses


@pytest.fixture
def site_capability():
    return StubCapability(site_responses())


@pytest.fixture
def site_client(site_capability):
    return make_client(site_capability)
