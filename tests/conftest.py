"""Shared fixtures: a FlowSource source tree, a scaffolded skeleton and TSX samples.

The trees are minimal but shaped like the real ones so the orchestrator and
the CLI can run every phase against ``tmp_path`` without Node.js.
"""

from __future__ import annotations

from pathlib import Path

import pytest

FENCE = "`" * 3

APP_TSX = """import React from 'react';
import { Navigate, Route } from 'react-router-dom';
import { apis } from './apis';
import { Root } from './components/Root';
import {
  AlertDisplay,
  OAuthRequestDialog,
  SignInPage,
} from '@backstage/core-components';
import { createApp } from '@backstage/app-defaults';
import { AppRouter, FlatRoutes } from '@backstage/core-app-api';

const app = createApp({
  apis,
  bindRoutes({ bind }) {
    bind(catalogPlugin.externalRoutes, {
      createComponent: scaffolderPlugin.routes.root,
    });
  },
  components: {
    SignInPage: props => <SignInPage {...props} auto providers={['guest']} />,
  },
});

const routes = (
  <FlatRoutes>
    <Route path="/" element={<Navigate to="catalog" />} />
  </FlatRoutes>
);

export default app.createRoot(
  <>
    <AlertDisplay />
    <OAuthRequestDialog />
    <AppRouter>
      <Root>{routes}</Root>
    </AppRouter>
  </>,
);
"""

BACKEND_INDEX = """import { createBackend } from '@backstage/backend-defaults';

const backend = createBackend();

backend.add(import('@backstage/plugin-app-backend/alpha'));
backend.add(import('@backstage/plugin-auth-backend'));
backend.add(import('@backstage/plugin-auth-backend-module-guest-provider'));

backend.start();
"""

SKELETON_CONFIG = """app:
  title: Scaffolded App
  baseUrl: http://localhost:3000
backend:
  baseUrl: http://localhost:7007
auth:
  providers:
    guest: {}
catalog:
  locations:
    - type: file
      target: ../../examples/entities.yaml
"""

GITHUB_AUTH_DOC = f"""# GitHub Authentication

Register an OAuth app and paste the following into app-config.yaml.

{FENCE}yaml
auth:
  environment: development
  providers:
    github:
      development:
        clientId: ${{AUTH_GITHUB_CLIENT_ID}}
        clientSecret: ${{AUTH_GITHUB_CLIENT_SECRET}}
{FENCE}

## Integration

{FENCE}yml
integrations:
  github:
    - host: github.com
      token: <your github token>
{FENCE}

{FENCE}ts
import {{ githubAuthApiRef }} from '@backstage/core-plugin-api';
{FENCE}
"""

AUTH_DOC = f"""# Authentication

{FENCE}yaml
backend:
  auth:
    keys:
      - secret: ${{BACKEND_SECRET}}
{FENCE}
"""


PLUGIN_INTEGRATION_DOC = """# Plugin Integration

### Plugin Directory Setup

Copy the plugin folders next to the application packages.

### Jira Plugin

- **Frontend**: [Jira README](../../plugins/flowsource-jira/README.md)
- **Backend**: [Jira Backend README](../../plugins/flowsource-jira-backend/README.md)

### CI/CD GitHub Plugin

- **Frontend**: [CI/CD GitHub README](../../plugins/flowsource-cicd-github-frontend/README.md)

### Dashboard Plugin

Configured from the FlowSource UI.
"""

JIRA_README = f"""# Jira plugin

## App.tsx

{FENCE}tsx
import {{ JiraPage }} from '@flowsource/plugin-flowsource-jira';

<Route path="/jira" element={{<JiraPage />}} />
{FENCE}

## app-config.yaml

{FENCE}yaml
jira:
  apiBaseUrl: https://jira.example.com/rest/api/2
  token: ${{JIRA_TOKEN}}
{FENCE}

## catalog-info.yaml

{FENCE}yaml
apiVersion: backstage.io/v1alpha1
kind: Component
metadata:
  annotations:
    flowsource/jira-project-key: DEMO
{FENCE}

## EntityPage.tsx

{FENCE}tsx
<EntityLayout.Route path="/jira" title="Jira">
  <EntityJiraContent />
</EntityLayout.Route>
{FENCE}
"""

JIRA_BACKEND_README = f"""# Jira backend

{FENCE}ts
backend.add(import('@flowsource/plugin-flowsource-jira-backend'));
{FENCE}
"""


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def build_source_tree(root: Path) -> Path:
    """Create the parts of a FlowSource checkout the phases read from."""

    docs = root / "FlowSourceInstaller" / "FlowsourceSetupDoc"
    write(docs / "Readme.md", "# FlowSource\n")
    write(docs / "UI-Changes.md", "# UI changes\n")
    write(docs / "Auth.md", AUTH_DOC)
    write(docs / "GithubAuth.md", GITHUB_AUTH_DOC)
    write(root / "configuration" / "Dockerfile", "FROM node:18\n")
    write(root / "configuration" / ".gitignore", "node_modules\n/packages\ndist\n")
    write(root / "configuration" / "yarn.lock", "# lock\n")
    write(root / "packages-core" / "app" / "src" / "components" / "theme" / "FlowsourceTheme.ts", "export const FlowsourceTheme = {};\n")
    write(root / "packages-core" / "app" / "src" / "global.css", "body { margin: 0; }\n")
    write(root / "packages-core" / "backend" / "src" / "types.ts", "export type Env = {};\n")
    write(root / "templates" / "PDLC-Backend" / "template.yaml", "kind: Template\nmetadata:\n  name: pdlc-backend\n")
    write(root / "templates" / "PDLC-Backend" / "skeleton" / "README.md", "# ${{ values.name }}\n")
    write(docs / "Plugin-Integration.md", PLUGIN_INTEGRATION_DOC)
    write(root / "plugins" / "flowsource-jira" / "README.md", JIRA_README)
    write(root / "plugins" / "flowsource-jira" / "src" / "index.ts", "export const JiraPage = () => null;\n")
    write(root / "plugins" / "flowsource-jira-backend" / "README.md", JIRA_BACKEND_README)
    write(root / "plugins" / "flowsource-cicd-github-frontend" / "README.md", "# CI/CD GitHub\n")
    return root


def build_skeleton(root: Path) -> Path:
    """Create what ``@backstage/create-app`` would have generated."""

    write(root / "package.json", '{"name": "root"}\n')
    write(root / "app-config.yaml", SKELETON_CONFIG)
    write(root / "packages" / "app" / "src" / "App.tsx", APP_TSX)
    write(root / "packages" / "backend" / "src" / "index.ts", BACKEND_INDEX)
    write(root / "packages" / "backend" / "Dockerfile", "FROM node:18\n")
    return root


class FakeScaffolder:
    """Scaffolder double that lays out the skeleton instead of calling ``npx``."""

    def __init__(self) -> None:
        self.calls: list[tuple[Path, str]] = []

    def scaffold(self, destination: Path, app_name: str) -> Path:
        self.calls.append((destination, app_name))
        return build_skeleton(destination)


@pytest.fixture
def app_tsx() -> str:
    return APP_TSX


@pytest.fixture
def backend_index() -> str:
    return BACKEND_INDEX


@pytest.fixture
def source_tree(tmp_path: Path) -> Path:
    return build_source_tree(tmp_path / "flowsource")


@pytest.fixture
def skeleton(tmp_path: Path) -> Path:
    return build_skeleton(tmp_path / "app")


@pytest.fixture
def fake_scaffolder() -> FakeScaffolder:
    return FakeScaffolder()


@pytest.fixture
def github_auth_doc() -> str:
    return GITHUB_AUTH_DOC


@pytest.fixture
def plugin_index() -> str:
    return PLUGIN_INTEGRATION_DOC


@pytest.fixture
def jira_readme() -> str:
    return JIRA_README
