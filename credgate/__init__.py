"""credgate

A credential-pooling gateway that serves one stable chat API from several
independently authenticated upstream AI providers.
"""

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("credgate")
except PackageNotFoundError:
    # Fallback for source checkouts that are not installed
    __version__ = "0.1.0"
__author__ = "credgate"
