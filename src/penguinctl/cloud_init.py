"""Cloud-init rendering with Jinja2 support."""

from __future__ import annotations

from importlib.resources import files
from pathlib import Path
from typing import Any

from jinja2 import StrictUndefined, Template

from penguinctl.reconcilers import MAX_CLOUD_INIT_BYTES, InvalidConfigurationError


DEFAULT_TEMPLATE = "cloud-init.yaml.j2"


def load_template(template_path: Path | None = None) -> str:
    """Load a cloud-init template.

    Args:
        template_path: Template file; the packaged default when None

    Returns:
        Raw template text

    Raises:
        FileNotFoundError: If the template file does not exist
    """
    if template_path is None:
        return (
            files("penguinctl.templates")
            .joinpath(DEFAULT_TEMPLATE)
            .read_text(encoding="utf-8")
        )
    return Path(template_path).read_text(encoding="utf-8")


def render_cloud_init(
    context: dict[str, Any], template_path: Path | None = None
) -> str:
    """Render cloud-init user data.

    The result is sent raw as the VM ``cloud_init_data`` payload, so it must
    stay within the service limit.

    Args:
        context: Dictionary of variables for Jinja2 template rendering
        template_path: Template file; the packaged default when None

    Returns:
        Rendered cloud-init content

    Raises:
        InvalidConfigurationError: If the rendered payload is too large
        jinja2.TemplateError: If template rendering fails
    """
    template = Template(load_template(template_path), undefined=StrictUndefined)
    content = template.render(**context)

    size = len(content.encode("utf-8"))
    if size > MAX_CLOUD_INIT_BYTES:
        raise InvalidConfigurationError(
            f"Rendered cloud-init is {size} bytes, limit is {MAX_CLOUD_INIT_BYTES}"
        )
    return content
