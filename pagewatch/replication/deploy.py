import json
from pathlib import Path
from typing import List

ENTRY_DOCUMENT = "index.html"


def netlify_redirects(entry: str = ENTRY_DOCUMENT) -> str:
    # Netlify only applies the rule when no file exists at the requested path
    return f"/*    /{entry}   200\n"


def vercel_config(entry: str = ENTRY_DOCUMENT) -> dict:
    return {
        "cleanUrls": True,
        "rewrites": [{"source": "/(.*)", "destination": f"/{entry}"}],
    }


def write_deployment_descriptors(output_dir: Path, entry: str = ENTRY_DOCUMENT) -> List[str]:
    """Writes static-host descriptors at the bundle root. Returns the written paths."""
    redirects_path = output_dir / "_redirects"
    redirects_path.write_text(netlify_redirects(entry), encoding="utf-8")

    vercel_path = output_dir / "vercel.json"
    vercel_path.write_text(json.dumps(vercel_config(entry), indent=2), encoding="utf-8")

    return [str(redirects_path), str(vercel_path)]
