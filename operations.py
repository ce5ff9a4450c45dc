# ─────────────────────────────────────────────────────────────────────────────
#  Operation registry
#
#  Each operation is served at /api/<key> and maps to a handler module in
#  handlers/ exposing process(payload, config) -> dict. A handler returns
#  {"image": <jpeg bytes>} or {"data": <json-serialisable dict>}.
#
#  Per-operation config fields:
#    handler        : module name in handlers/ (e.g. "edit_exif")
#    name           : short title
#    description    : one-line description
#    methods        : accepted HTTP methods (OPTIONS is always answered)
#    download_name  : attachment filename for image responses
#    failure_message: error text for unexpected (500) failures
# ─────────────────────────────────────────────────────────────────────────────

_DEFAULT_FLAGS = {
    "methods":         ["POST"],
    "download_name":   "image.jpg",
    "failure_message": "Failed to process image",
}

OPERATIONS: dict[str, dict] = {

    "edit-exif": {
        **_DEFAULT_FLAGS,
        "handler":       "edit_exif",
        "name":          "Edit Metadata",
        "description":   "Embed description, keywords, GPS, camera and date metadata into a JPEG.",
        "download_name": "edited-image.jpg",
    },

    "read-exif": {
        **_DEFAULT_FLAGS,
        "handler":         "read_exif",
        "name":            "Read Metadata",
        "description":     "Return the editable metadata already embedded in an image.",
        "failure_message": "Failed to read image metadata",
    },

    "crop-image": {
        **_DEFAULT_FLAGS,
        "handler":         "crop_image",
        "name":            "Crop Image",
        "description":     "Trim pixels from the top, bottom, left and right edges.",
        "download_name":   "cropped-image.jpg",
        "failure_message": "Failed to crop image",
    },

    "add-watermark": {
        **_DEFAULT_FLAGS,
        "handler":         "add_watermark",
        "name":            "Add Watermark",
        "description":     "Place a logo in a corner of the image.",
        "download_name":   "watermarked-image.jpg",
        "failure_message": "Failed to add watermark",
    },

    "pluscode-to-coords": {
        **_DEFAULT_FLAGS,
        "handler":         "pluscode_to_coords",
        "name":            "Plus Code Lookup",
        "description":     "Convert a Plus Code to latitude and longitude.",
        "methods":         ["GET", "POST"],
        "failure_message": "Failed to convert Plus Code",
    },

}
