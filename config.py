"""Central configuration for pixbridge.

All tunable defaults are defined here with descriptive names. The typed
parameter objects in ``imaging`` and the stream adapters in ``streams``
read their defaults from this module, so changing a value here changes
the behaviour everywhere.
"""

# =============================================================================
# STREAMS
# =============================================================================

# Chunk size used when a stream has to be pulled or pushed in pieces
# (non-seekable sources read to the end, spooled encoder output).
STREAM_CHUNK_SIZE = 65536

# Number of leading bytes inspected to sniff the format of a source
HEADER_SNIFF_BYTES = 1024

# Number of leading bytes scanned for an "<svg" marker
SVG_SNIFF_BYTES = 500

# Minimum number of bytes needed to recognise any supported format
MIN_SNIFF_BYTES = 12

# =============================================================================
# EXPORT DEFAULTS
# =============================================================================

# Quality used when an export parameter leaves quality unset (1-100)
DEFAULT_QUALITY = 80

# zlib compression level for PNG output (0-9)
DEFAULT_PNG_COMPRESSION = 6

# WebP encoder effort (0 = fastest, 6 = slowest/smallest)
DEFAULT_WEBP_EFFORT = 4

# AVIF encoder speed (0 = slowest/smallest, 9 = fastest)
DEFAULT_AVIF_SPEED = 5

# TIFF compression scheme
DEFAULT_TIFF_COMPRESSION = "lzw"

# Bits per pixel for palette output (GIF, palettised PNG)
DEFAULT_GIF_BITDEPTH = 8

# JPEG chroma subsampling mode ("auto", "on" or "off")
# "on" always uses 4:2:0, "off" always 4:4:4, "auto" switches to 4:4:4
# at AUTO_SUBSAMPLE_QUALITY and above.
DEFAULT_JPEG_SUBSAMPLE = "on"
AUTO_SUBSAMPLE_QUALITY = 90

# =============================================================================
# TRANSFORMS
# =============================================================================

# Largest accepted resize scale (upscaling beyond this is rejected)
MAX_SCALE_FACTOR = 10

# Resolution assumed when an image carries no DPI information
DEFAULT_DPI = 72

# Font used for labels and text watermarks ("family size")
DEFAULT_FONT = "sans 10"

# Opacity of label text (0.0 - 1.0)
DEFAULT_LABEL_OPACITY = 1.0

# Margin in pixels kept around aligned text watermarks
DEFAULT_WATERMARK_MARGIN = 10
