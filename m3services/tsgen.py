"""Generate TypeScript client typings from service OpenAPI specs and bump the client package."""

from __future__ import annotations

import json
import os
import re
import shutil
import stat
import subprocess
import sys
from itertools import chain
from pathlib import Path
from typing import Any

import semver

_DELIMITERS = frozenset("-_ ")
_NPM_PACKAGE = "@micro/services"
_PLACEHOLDER_VERSION = re.compile(r"1.0.1")


class ClientGenError(RuntimeError):
    """Raised when client typings cannot be generated."""


class CopyError(OSError):
    """Raised when a file cannot be copied because of its kind."""


def _is_upper(ch: str) -> bool:
    return "A" <= ch <= "Z"


def _is_lower(ch: str) -> bool:
    return "a" <= ch <= "z"


def _lower(ch: str) -> str:
    return ch.lower() if _is_upper(ch) else ch


def snake_case(name: str) -> str:
    """Convert a camelCase, PascalCase, kebab or spaced name to snake_case."""
    text = name.strip()
    if not text:
        return ""
    out: list[str] = []
    triples = zip(chain(("",), text), text, chain(text[1:], (None,)))
    for prev, curr, nxt in triples:
        if nxt is None:
            if _is_upper(curr) and _is_lower(prev):
                out.append("_")
            out.append(_lower(curr))
        elif curr in _DELIMITERS:
            if prev not in _DELIMITERS:
                out.append("_")
        elif _is_upper(curr):
            if _is_lower(prev) or (_is_upper(prev) and _is_lower(nxt)):
                out.append("_")
            out.append(_lower(curr))
        else:
            out.append(_lower(curr))
    return "".join(out)


def _properties_to_ts(props: dict[str, Any], level: int) -> str:
    pad = "  " * level
    lines = []
    for key in sorted(props):
        value = props[key] or {}
        name = snake_case(key)
        kind = value.get("type") or ""
        body = ""
        if kind == "object":
            inner = _properties_to_ts(value.get("properties") or {}, level + 1)
            body = f"{name}?: {{\n{inner}{pad}}};"
        elif kind == "array":
            items = value.get("items") or {}
            item_props = items.get("properties") or {}
            if not item_props:
                body = f"{name}?: {items.get('type') or ''}[];"
            else:
                inner = _properties_to_ts(item_props, level + 1)
                body = f"{name}?: {{\n{inner}{pad}}}[];"
        elif kind in ("string", "number", "boolean"):
            body = f"{name}?: {kind};"
        lines.append(pad + body + "\n")
    return "".join(lines)


def schema_to_ts(title: str, schema: dict[str, Any]) -> str:
    """Render an OpenAPI object schema as a TypeScript interface."""
    props = (schema or {}).get("properties") or {}
    return f"export interface {title} {{\n{_properties_to_ts(props, 1)}}}"


def _parse_version(text: str) -> semver.Version:
    cleaned = text.strip()
    if cleaned.startswith("v"):
        cleaned = cleaned[1:]
    try:
        return semver.Version.parse(cleaned, optional_minor_and_patch=True)
    except (ValueError, TypeError) as exc:
        raise ValueError(f"invalid semantic version: {text!r}") from exc


def next_version(versions: list[str]) -> str:
    """Return the next patch release after the highest of the given versions."""
    latest: semver.Version | None = None
    for text in versions:
        version = _parse_version(text)
        if latest is None or version > latest:
            latest = version
    if latest is None:
        latest = semver.Version(0, 0, 0)
    patch = latest.patch if latest.prerelease else latest.patch + 1
    return str(semver.Version(latest.major, latest.minor, patch))


def _copy_contents(src: Path, dst: Path) -> None:
    with open(src, "rb") as fin, open(dst, "wb") as fout:
        shutil.copyfileobj(fin, fout)
        fout.flush()
        os.fsync(fout.fileno())


def copy_file(src: str | os.PathLike, dst: str | os.PathLike) -> None:
    """Copy a regular file, hard-linking where possible and doing nothing if both are the same file."""
    src, dst = Path(src), Path(dst)
    src_stat = os.stat(src)
    if not stat.S_ISREG(src_stat.st_mode):
        raise CopyError(
            f"non-regular source file {src.name} ({stat.filemode(src_stat.st_mode)!r})"
        )
    try:
        dst_stat = os.stat(dst)
    except FileNotFoundError:
        dst_stat = None
    if dst_stat is not None:
        if not stat.S_ISREG(dst_stat.st_mode):
            raise CopyError(
                f"non-regular destination file {dst.name} ({stat.filemode(dst_stat.st_mode)!r})"
            )
        if os.path.samestat(src_stat, dst_stat):
            return
    try:
        os.link(src, dst)
        return
    except OSError:
        pass
    _copy_contents(src, dst)


def _append(path: Path, text: str) -> None:
    with open(path, "a", encoding="utf-8") as handle:
        handle.write(text)
    path.chmod(0o600)


def _find_spec(service_dir: Path) -> tuple[Path | None, bool]:
    spec: Path | None = None
    skip = False
    for name in sorted(os.listdir(service_dir)):
        if "api" in name and name.endswith(".json"):
            spec = service_dir / name
        if name == "skip":
            skip = True
    return spec, skip


def generate_clients(
    services_dir: str | os.PathLike, work_dir: str | os.PathLike
) -> list[str]:
    """Append TypeScript typings for every service to clients/ts and return the services handled."""
    work = Path(work_dir)
    ts_path = work / "clients" / "ts"
    try:
        with os.scandir(services_dir) as it:
            names = sorted(
                entry.name
                for entry in it
                if entry.is_dir() and not entry.name.startswith(".")
            )
    except OSError as exc:
        raise ClientGenError(f"failed to read services dir: {exc}") from exc

    handled = []
    for service_name in names:
        service_dir = work / service_name
        try:
            spec_path, skip = _find_spec(service_dir)
        except OSError as exc:
            raise ClientGenError(f"Failed to read service dir {exc}") from exc
        if skip:
            continue
        print(spec_path or "")
        print("Processing folder", service_dir)

        if spec_path is None:
            raise ClientGenError(f"Failed to read json spec in {service_dir}")
        try:
            spec = json.loads(spec_path.read_bytes())
        except OSError as exc:
            raise ClientGenError(f"Failed to read json spec {exc}") from exc
        except ValueError as exc:
            raise ClientGenError(f"Failed to unmarshal {exc}") from exc
        if not isinstance(spec, dict):
            raise ClientGenError("Failed to unmarshal: spec is not a JSON object")

        schemas = (spec.get("components") or {}).get("schemas") or {}
        content = "".join(
            schema_to_ts(name, schemas[name]) + "\n\n" for name in sorted(schemas)
        )
        service_ts = ts_path / service_name
        service_ts.mkdir(parents=True, exist_ok=True)
        try:
            _append(service_ts / "index.ts", content)
            _append(ts_path / "index.ts", "")
        except OSError as exc:
            raise ClientGenError(f"Failed to write typings {exc}") from exc
        handled.append(service_name)
    return handled


def _published_versions(output: bytes) -> list[str]:
    if not output.strip():
        return []
    data = json.loads(output)
    versions = data.get("versions", []) if isinstance(data, dict) else None
    if versions is None:
        return []
    if not isinstance(versions, list) or not all(isinstance(v, str) for v in versions):
        raise ValueError("versions is not a list of strings")
    return versions


def _bump_package(package_json: Path, version: str) -> None:
    text = package_json.read_text(encoding="utf-8")
    package_json.write_text(_PLACEHOLDER_VERSION.sub(version, text), encoding="utf-8")


def main(argv: list[str] | None = None) -> int:
    """Generate client typings, log in to the package registry and bump the package version."""
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("usage: clients <services-dir>", file=sys.stderr)
        return 1
    work_dir = Path.cwd()
    ts_path = work_dir / "clients" / "ts"

    try:
        generate_clients(args[0], work_dir)
    except ClientGenError as exc:
        print(exc)
        return 1

    npmrc = ts_path / ".npmrc"
    try:
        _append(npmrc, "")
    except OSError as exc:
        print("Failed to open npmrc", exc)
        return 1
    npm_auth = os.environ.get("NPM_TOKEN", "")
    if not npm_auth:
        print("No NPM_TOKEN env found")
        return 1
    try:
        _append(npmrc, "\n//npm.pkg.github.com/:_authToken=" + npm_auth)
    except OSError as exc:
        print("Failed to open npmrc", exc)
        return 1

    try:
        proc = subprocess.run(
            ["npm", "show", _NPM_PACKAGE, "--time", "--json"],
            cwd=str(ts_path),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            check=False,
        )
    except OSError as exc:
        print("Failed to get versions of NPM package", exc)
        return 1
    output = proc.stdout or b""
    if isinstance(output, str):
        output = output.encode("utf-8")
    if proc.returncode != 0:
        print("Failed to get versions of NPM package", output.decode("utf-8", "replace"))
        return 1

    try:
        versions = _published_versions(output)
    except ValueError:
        print("Failed to unmarshal versions", output.decode("utf-8", "replace"))
        return 1
    try:
        new_version = next_version(versions)
    except ValueError as exc:
        print("Failed to parse semver", exc)
        return 1

    print("Bumping to ", new_version)
    try:
        _bump_package(ts_path / "package.json", new_version)
    except OSError as exc:
        print("Failed to bump package version", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())