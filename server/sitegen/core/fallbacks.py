# sitegen/core/fallbacks.py
"""
Deterministic placeholder files used when generation or repair fails.

A fallback page only links files it is guaranteed to find: the style/behavior
files it declares as dependencies and the other pages of the manifest.
Fallback stylesheets and scripts reference nothing.
"""
import html
import os
from typing import List

from sitegen.models import ArtifactKind, ArtifactSpec, Manifest


def _page_title(name: str) -> str:
    stem = os.path.splitext(os.path.basename(name))[0]
    if stem == "index":
        return "Home"
    return stem.replace("-", " ").replace("_", " ").title()


def _nav_links(spec: ArtifactSpec, manifest: Manifest) -> List[str]:
    links = []
    for page in manifest.by_kind(ArtifactKind.MARKUP):
        cls = "nav-link active" if page.name == spec.name else "nav-link"
        links.append(
            f'                <a href="{html.escape(page.name)}" class="{cls}">{html.escape(_page_title(page.name))}</a>'
        )
    return links


def fallback_markup(spec: ArtifactSpec, manifest: Manifest) -> str:
    app_name = html.escape(manifest.project_name or "Application")
    title = html.escape(_page_title(spec.name))
    head_links = []
    scripts = []
    for dep in spec.dependencies:
        dep_spec = manifest.get(dep)
        if dep_spec is None:
            continue
        if dep_spec.kind == ArtifactKind.STYLE:
            head_links.append(f'    <link rel="stylesheet" href="{html.escape(dep)}">')
        elif dep_spec.kind == ArtifactKind.BEHAVIOR:
            scripts.append(f'    <script src="{html.escape(dep)}" defer></script>')
    purpose = html.escape(spec.purpose or "This page is being prepared.")
    lines = [
        "<!DOCTYPE html>",
        '<html lang="en">',
        "<head>",
        '    <meta charset="UTF-8">',
        '    <meta name="viewport" content="width=device-width, initial-scale=1.0">',
        f"    <title>{title} - {app_name}</title>",
        *head_links,
        "</head>",
        "<body>",
        '    <div class="app-container">',
        '        <header class="app-header">',
        f'            <h1 class="app-title">{app_name}</h1>',
        '            <nav class="header-nav">',
        *_nav_links(spec, manifest),
        "            </nav>",
        "        </header>",
        '        <main class="main-content">',
        '            <section class="content-section">',
        f"                <h2>{title}</h2>",
        f"                <p>{purpose}</p>",
        "            </section>",
        "        </main>",
        '        <footer class="app-footer">',
        f"            <p>{app_name}</p>",
        "        </footer>",
        "    </div>",
        *scripts,
        "</body>",
        "</html>",
    ]
    return "\n".join(lines) + "\n"


def fallback_style(spec: ArtifactSpec, manifest: Manifest) -> str:
    return """:root {
  --primary-color: #2563eb;
  --background-color: #f8fafc;
  --surface-color: #ffffff;
  --text-color: #1f2937;
  --font-family: system-ui, -apple-system, sans-serif;
}

* {
  box-sizing: border-box;
}

body {
  margin: 0;
  font-family: var(--font-family);
  background: var(--background-color);
  color: var(--text-color);
  line-height: 1.6;
}

.app-container {
  min-height: 100vh;
  display: flex;
  flex-direction: column;
}

.app-header {
  display: flex;
  flex-wrap: wrap;
  align-items: center;
  justify-content: space-between;
  padding: 1rem 2rem;
  background: var(--surface-color);
  box-shadow: 0 1px 3px rgba(0, 0, 0, 0.1);
}

.app-title {
  margin: 0;
  font-size: 1.5rem;
}

.header-nav {
  display: flex;
  gap: 1rem;
}

.nav-link {
  color: var(--text-color);
  text-decoration: none;
}

.nav-link.active,
.nav-link:hover {
  color: var(--primary-color);
}

.main-content {
  flex: 1;
  padding: 2rem;
}

.content-section {
  max-width: 960px;
  margin: 0 auto;
  padding: 2rem;
  background: var(--surface-color);
  border-radius: 8px;
}

.app-footer {
  padding: 1rem 2rem;
  text-align: center;
}

@media (max-width: 640px) {
  .app-header {
    flex-direction: column;
    gap: 0.5rem;
  }
}
"""


def fallback_behavior(spec: ArtifactSpec, manifest: Manifest) -> str:
    return """document.addEventListener('DOMContentLoaded', function () {
  var links = document.querySelectorAll('.nav-link');
  var current = window.location.pathname.split('/').pop() || 'index.html';
  links.forEach(function (link) {
    if (link.getAttribute('href') === current) {
      link.classList.add('active');
    }
  });
});
"""


_FALLBACKS = {
    ArtifactKind.MARKUP: fallback_markup,
    ArtifactKind.STYLE: fallback_style,
    ArtifactKind.BEHAVIOR: fallback_behavior,
}


def fallback_content(spec: ArtifactSpec, manifest: Manifest) -> str:
    return _FALLBACKS[spec.kind](spec, manifest)
