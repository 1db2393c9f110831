"""
Built-in pipeline templates.

Stored in the same camelCase JSON shape that ``TemplateRegistry.export_json``
produces. Built-ins have no ``id`` and can never be modified.
"""

from typing import Any

from stepflow.models.template import Template

_NODE_CONTEXT: dict[str, Any] = {
    "type": "sdk",
    "sdkType": "node",
    "workingDirectory": "${PROJECT_PATH}",
}

BUILTIN_TEMPLATE_DATA: tuple[dict[str, Any], ...] = (
    {
        "key": "react-build",
        "name": "React Build Pipeline",
        "description": "Build and test a React application",
        "framework": "react",
        "category": "build",
        "packageManager": "npm",
        "steps": [
            {
                "key": "install-deps",
                "name": "Install Dependencies",
                "type": "command",
                "config": {"command": "npm install"},
            },
            {
                "key": "lint-code",
                "name": "Lint Code",
                "type": "command",
                "config": {"command": "npm run lint"},
                "dependsOn": ["install-deps"],
            },
            {
                "key": "run-tests",
                "name": "Run Tests",
                "type": "command",
                "config": {"command": "npm test"},
                "dependsOn": ["install-deps"],
            },
            {
                "key": "build-project",
                "name": "Build Project",
                "type": "command",
                "config": {"command": "npm run build"},
                "dependsOn": ["lint-code", "run-tests"],
            },
        ],
        "variables": [
            {
                "name": "NODE_VERSION",
                "type": "string",
                "defaultValue": "18",
                "description": "Node.js version",
            },
            {
                "name": "BUILD_ENV",
                "type": "string",
                "defaultValue": "production",
                "description": "Build environment",
            },
        ],
        "executionContext": _NODE_CONTEXT,
        "tags": ["react", "build", "test"],
    },
    {
        "key": "nextjs-full",
        "name": "Next.js Full Pipeline",
        "description": "Complete Next.js CI/CD pipeline with build, test, and deploy",
        "framework": "nextjs",
        "category": "ci-cd",
        "packageManager": "npm",
        "steps": [
            {
                "key": "install-deps",
                "name": "Install Dependencies",
                "type": "command",
                "config": {"command": "npm ci"},
            },
            {
                "key": "type-check",
                "name": "Type Check",
                "type": "command",
                "config": {"command": "npm run type-check"},
                "dependsOn": ["install-deps"],
            },
            {
                "key": "lint",
                "name": "Lint",
                "type": "command",
                "config": {"command": "npm run lint"},
                "dependsOn": ["install-deps"],
            },
            {
                "key": "run-tests",
                "name": "Run Tests",
                "type": "command",
                "config": {"command": "npm test"},
                "dependsOn": ["install-deps"],
            },
            {
                "key": "build",
                "name": "Build",
                "type": "command",
                "config": {"command": "npm run build"},
                "dependsOn": ["type-check", "lint", "run-tests"],
            },
            {
                "key": "build-docker-image",
                "name": "Build Docker Image",
                "type": "docker_command",
                "config": {
                    "image": "${PROJECT_NAME}:${BUILD_NUMBER}",
                    "buildContext": "${PROJECT_PATH}",
                    "dockerfilePath": "Dockerfile",
                },
                "dependsOn": ["build"],
            },
        ],
        "variables": [
            {
                "name": "NODE_VERSION",
                "type": "string",
                "defaultValue": "18",
                "description": "Node.js version",
            },
            {
                "name": "BUILD_NUMBER",
                "type": "string",
                "defaultValue": "${GIT_COMMIT_SHORT}",
                "description": "Build number",
            },
        ],
        "executionContext": _NODE_CONTEXT,
        "tags": ["nextjs", "ci-cd", "docker"],
    },
    {
        "key": "vue-build",
        "name": "Vue.js Build Pipeline",
        "description": "Build and test a Vue.js application",
        "framework": "vue",
        "category": "build",
        "packageManager": "npm",
        "steps": [
            {
                "key": "install-deps",
                "name": "Install Dependencies",
                "type": "command",
                "config": {"command": "npm install"},
            },
            {
                "key": "lint",
                "name": "Lint",
                "type": "command",
                "config": {"command": "npm run lint"},
                "dependsOn": ["install-deps"],
            },
            {
                "key": "unit-tests",
                "name": "Unit Tests",
                "type": "command",
                "config": {"command": "npm run test:unit"},
                "dependsOn": ["install-deps"],
            },
            {
                "key": "build",
                "name": "Build",
                "type": "command",
                "config": {"command": "npm run build"},
                "dependsOn": ["lint", "unit-tests"],
            },
        ],
        "executionContext": _NODE_CONTEXT,
        "tags": ["vue", "build", "test"],
    },
    {
        "key": "nodejs-api",
        "name": "Node.js API Pipeline",
        "description": "Build, test, and deploy a Node.js API",
        "framework": "nodejs",
        "category": "full-stack",
        "packageManager": "npm",
        "steps": [
            {
                "key": "install-deps",
                "name": "Install Dependencies",
                "type": "command",
                "config": {"command": "npm ci"},
            },
            {
                "key": "run-tests",
                "name": "Run Tests",
                "type": "command",
                "config": {"command": "npm test"},
                "dependsOn": ["install-deps"],
            },
            {
                "key": "build",
                "name": "Build",
                "type": "command",
                "config": {"command": "npm run build"},
                "dependsOn": ["run-tests"],
            },
            {
                "key": "docker-build",
                "name": "Docker Build",
                "type": "docker_command",
                "config": {
                    "image": "${PROJECT_NAME}-api:latest",
                    "buildContext": "${PROJECT_PATH}",
                },
                "dependsOn": ["build"],
            },
        ],
        "executionContext": _NODE_CONTEXT,
        "tags": ["nodejs", "api", "docker"],
    },
    {
        "key": "django-full",
        "name": "Django Full Pipeline",
        "description": "Complete Django CI/CD pipeline",
        "framework": "django",
        "category": "ci-cd",
        "packageManager": "pip",
        "steps": [
            {
                "key": "install-deps",
                "name": "Install Dependencies",
                "type": "sdk_command",
                "config": {
                    "sdkType": "python",
                    "command": "pip",
                    "args": ["install", "-r", "requirements.txt"],
                },
            },
            {
                "key": "run-migrations",
                "name": "Run Migrations",
                "type": "sdk_command",
                "config": {
                    "sdkType": "python",
                    "command": "python",
                    "args": ["manage.py", "migrate"],
                },
                "dependsOn": ["install-deps"],
            },
            {
                "key": "run-tests",
                "name": "Run Tests",
                "type": "sdk_command",
                "config": {"sdkType": "python", "command": "pytest"},
                "dependsOn": ["install-deps"],
            },
            {
                "key": "collect-static",
                "name": "Collect Static Files",
                "type": "sdk_command",
                "config": {
                    "sdkType": "python",
                    "command": "python",
                    "args": ["manage.py", "collectstatic", "--noinput"],
                },
                "dependsOn": ["run-tests"],
            },
        ],
        "executionContext": {
            "type": "sdk",
            "sdkType": "python",
            "workingDirectory": "${PROJECT_PATH}",
        },
        "tags": ["django", "python", "ci-cd"],
    },
    {
        "key": "rust-build",
        "name": "Rust Build Pipeline",
        "description": "Build, test, and lint a Rust project",
        "framework": "rust",
        "category": "build",
        "packageManager": "cargo",
        "steps": [
            {
                "key": "format-check",
                "name": "Format Check",
                "type": "command",
                "config": {"command": "cargo fmt -- --check"},
            },
            {
                "key": "clippy-lint",
                "name": "Clippy Lint",
                "type": "command",
                "config": {"command": "cargo clippy -- -D warnings"},
                "dependsOn": ["format-check"],
            },
            {
                "key": "run-tests",
                "name": "Run Tests",
                "type": "command",
                "config": {"command": "cargo test"},
                "dependsOn": ["format-check"],
            },
            {
                "key": "build-release",
                "name": "Build Release",
                "type": "command",
                "config": {"command": "cargo build --release"},
                "dependsOn": ["clippy-lint", "run-tests"],
            },
        ],
        "executionContext": {
            "type": "sdk",
            "sdkType": "rust",
            "workingDirectory": "${PROJECT_PATH}",
        },
        "tags": ["rust", "cargo", "build"],
    },
    {
        "key": "docker-build-deploy",
        "name": "Docker Build & Deploy",
        "description": "Build and deploy using Docker",
        "framework": "docker",
        "category": "deploy",
        "steps": [
            {
                "key": "build-image",
                "name": "Build Image",
                "type": "docker_command",
                "config": {
                    "image": "${PROJECT_NAME}:${VERSION}",
                    "buildContext": "${PROJECT_PATH}",
                    "dockerfilePath": "Dockerfile",
                },
            },
            {
                "key": "run-container",
                "name": "Run Container",
                "type": "docker_command",
                "config": {
                    "image": "${PROJECT_NAME}:${VERSION}",
                    "ports": ["${PORT}:8080"],
                },
                "dependsOn": ["build-image"],
            },
        ],
        "variables": [
            {
                "name": "VERSION",
                "type": "string",
                "defaultValue": "latest",
                "description": "Image version",
            },
            {
                "name": "PORT",
                "type": "number",
                "defaultValue": 8080,
                "description": "Host port",
            },
        ],
        "executionContext": {"type": "docker", "workingDirectory": "${PROJECT_PATH}"},
        "tags": ["docker", "deploy"],
    },
)


def builtin_templates() -> list[Template]:
    """Build fresh instances of every built-in template."""
    return [Template.model_validate(data) for data in BUILTIN_TEMPLATE_DATA]
