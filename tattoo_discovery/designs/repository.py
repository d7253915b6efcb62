"""Generated-design records.

Each consumed generation leaves one record in the `generated_tattoos`
collection: the prompt, the request fields that produced it, the provider
model and a reference to the image. When an `image_dir` is configured the PNG
is written there and the record keeps its path; otherwise only the SHA-256 of
the image is kept.
"""

import base64
import hashlib
import logging
import os
from datetime import datetime, timezone


logger = logging.getLogger(__name__)

COLLECTION = "generated_tattoos"


class DesignRepository:
    def __init__(self, store, image_dir=None):
        self.store = store
        self.image_dir = image_dir

    def _write_image(self, design_id, image_base64):
        os.makedirs(self.image_dir, exist_ok=True)
        path = os.path.join(self.image_dir, f"{design_id}.png")
        with open(path, "wb") as f:
            f.write(base64.b64decode(image_base64))
        return path

    def save_generated_design(self, user_key, data, image_base64=None) -> str:
        """Store a design record for `user_key` and return its ID."""
        now = datetime.now(timezone.utc).isoformat()
        record = {
            "userId": user_key,
            **data,
            "createdAt": now,
            "updatedAt": now,
        }
        if image_base64:
            record["imageSha256"] = hashlib.sha256(image_base64.encode("ascii")).hexdigest()

        design_id = self.store.add(COLLECTION, record)

        if image_base64 and self.image_dir:
            path = self._write_image(design_id, image_base64)
            self.store.update(COLLECTION, design_id, {"imagePath": path})

        logger.info("Saved generated design %s for %s", design_id, user_key)
        return design_id

    def list_user_designs(self, user_key) -> list:
        """Return the user's designs, newest first."""
        designs = self.store.query(COLLECTION, "userId", user_key)
        return sorted(designs, key=lambda d: d.get("createdAt") or "", reverse=True)
