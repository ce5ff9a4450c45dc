"""Shared Pillow utilities used by the crop and watermark handlers."""
import io

from PIL import Image, UnidentifiedImageError

from service_errors import SourceUnavailableError

POSITIONS = ("top-right", "top-left", "bottom-right", "bottom-left")
DEFAULT_POSITION = "top-right"

MIN_LOGO_PERCENT     = 5
MAX_LOGO_PERCENT     = 50
DEFAULT_LOGO_PERCENT = 15
PADDING_RATIO        = 0.02   # logo distance from the edges, fraction of image width


def open_image(data: bytes, label: str = "image") -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise SourceUnavailableError(f"The supplied {label} is not a readable image") from e
    return image


def encode_jpeg(image: Image.Image, quality: int = 95) -> bytes:
    buffer = io.BytesIO()
    image.convert("RGB").save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


def crop_edges(image: Image.Image, top: int, bottom: int, left: int, right: int) -> Image.Image:
    """Remove the given number of pixels from each edge. Caller validates the box."""
    width, height = image.size
    return image.crop((left, top, width - right, height - bottom))


def logo_box(
    image_size: tuple[int, int],
    logo_size: tuple[int, int],
    position: str,
    offset_x: int = 0,
    offset_y: int = 0,
) -> tuple[int, int]:
    """Top-left corner for the logo: corner anchor + padding + offsets, kept inside the image."""
    width, height = image_size
    logo_w, logo_h = logo_size
    padding = round(width * PADDING_RATIO)

    if position == "top-left":
        left, top = padding, padding
    elif position == "bottom-right":
        left, top = width - logo_w - padding, height - logo_h - padding
    elif position == "bottom-left":
        left, top = padding, height - logo_h - padding
    else:
        left, top = width - logo_w - padding, padding

    left += offset_x
    top  += offset_y
    left = max(0, min(left, width - logo_w))
    top  = max(0, min(top, height - logo_h))
    return left, top


def add_logo(
    image: Image.Image,
    logo: Image.Image,
    position: str = DEFAULT_POSITION,
    size_percent: float = DEFAULT_LOGO_PERCENT,
    offset_x: int = 0,
    offset_y: int = 0,
) -> Image.Image:
    """
    Composite logo onto image, scaled to size_percent of the image width.
    The logo keeps its aspect ratio and its transparency.
    Returns a new RGB image (the inputs are not modified).
    """
    width, height = image.size
    logo   = logo.convert("RGBA")
    aspect = logo.width / logo.height

    logo_w = max(1, round(width * (size_percent / 100)))
    logo_h = max(1, round(logo_w / aspect))
    if logo_h > height:   # very tall logo: fit the height instead
        logo_h = height
        logo_w = max(1, round(height * aspect))
    logo = logo.resize((logo_w, logo_h), Image.LANCZOS)

    left, top = logo_box(image.size, logo.size, position, offset_x, offset_y)

    base = image.convert("RGBA")
    base.alpha_composite(logo, dest=(left, top))
    return base.convert("RGB")
