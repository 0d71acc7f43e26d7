"""Module defining various global constants."""

# kodofs version
VERSION = "1.0.0"

# Format of the metadata records that are stored in stub symlinks.
# The major version must be identical for a stub to be decoded, stubs written with a
# different major version are treated like regular local entries.
STUB_FORMAT_VERSION = "1.0.0"

# Special exit code for when kodofs itself fails.
KODOFS_ERROR_CODE = 254

# URL scheme of mountable buckets, e.g. "kodo:<bucket>?<token>".
SCHEME = "kodo"

# Sentinel file that marks a local directory as having all of its children stubbed.
DIR_CACHED_MARKER = ".bktls.cache"

# Number of objects requested per list call when the caller doesn't specify one.
DEFAULT_PAGE_SIZE = 1000

# Default service hosts
DEFAULT_UC_HOST = "uc.qiniuapi.com"
DEFAULT_RSF_HOST = "rsf.qiniuapi.com"
DEFAULT_UP_HOST = "upload.qiniup.com"

# Qiniu specific response codes
CODE_NO_SUCH_ENTRY = 612
