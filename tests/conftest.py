import io
import os
import sys
import pytest
from fastapi.testclient import TestClient
from PIL import Image

# Ensure project root is on sys.path for `import app`
_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _ROOT not in sys.path:
    sys.path.insert(0, _ROOT)

from main import app
from app.api import deps
from app.core.config import settings
from app.models.ingestion import UploadedImage
from app.services.catalog_store import InMemoryCatalogStore

VENDOR_ID = "vendor-1"

CSV_HEADER = "name,description,price,category,stock,length,width,height,weight,specifications,tags"


def image_bytes(size=(400, 300), fmt="JPEG", mode="RGB", color=(200, 30, 30)) -> bytes:
    if mode == "RGBA":
        color = color + (128,)
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture(autouse=True)
def upload_dirs(tmp_path, monkeypatch):
    products_dir = tmp_path / "uploads" / "products"
    temp_dir = tmp_path / "uploads" / "temp"
    products_dir.mkdir(parents=True)
    temp_dir.mkdir(parents=True)
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setattr(settings, "PRODUCTS_DIR", str(products_dir))
    monkeypatch.setattr(settings, "TEMP_DIR", str(temp_dir))
    return {"products": products_dir, "temp": temp_dir}


@pytest.fixture()
def store():
    return InMemoryCatalogStore()


@pytest.fixture()
def client(store):
    app.dependency_overrides[deps.get_catalog_store] = lambda: store
    yield TestClient(app, headers={settings.VENDOR_ID_HEADER: VENDOR_ID})
    app.dependency_overrides.clear()


@pytest.fixture()
def make_image(tmp_path):
    """Writes an image file and returns its path."""
    staging = tmp_path / "staging"
    staging.mkdir(exist_ok=True)

    def _make(name="photo.jpg", size=(400, 300), fmt="JPEG", mode="RGB") -> str:
        path = staging / name
        path.write_bytes(image_bytes(size=size, fmt=fmt, mode=mode))
        return str(path)

    return _make


@pytest.fixture()
def make_upload(upload_dirs):
    """Stages a file in the products dir the way the upload endpoint does."""
    counter = {"n": 0}

    def _make(original_filename="photo.jpg", data=None, mime="image/jpeg") -> UploadedImage:
        counter["n"] += 1
        data = image_bytes() if data is None else data
        ext = os.path.splitext(original_filename)[1]
        path = upload_dirs["products"] / f"1700000000000-{counter['n']}{ext}"
        path.write_bytes(data)
        return UploadedImage(
            temp_path=str(path),
            original_filename=original_filename,
            declared_mime_type=mime,
            size_bytes=len(data),
        )

    return _make


@pytest.fixture()
def write_file(tmp_path):
    """Writes a bulk catalog file into the temp dir and returns its path."""
    def _write(name: str, content) -> str:
        path = tmp_path / "uploads" / "temp" / name
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        return str(path)

    return _write
