"""
Configuration settings for Molecule Generation Studio
"""
import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file from the backend directory FIRST before any imports
_backend_dir = Path(__file__).parent
_env_file = _backend_dir / ".env"
if _env_file.exists():
    load_dotenv(_env_file, override=True)

# Older deployments exported the key under the frontend-visible name
_api_key = os.getenv("NVIDIA_API_KEY") or os.getenv("NEXT_PUBLIC_NVIDIA_API_KEY", "")


class Settings:
    """Application settings loaded from environment variables"""

    def __init__(self):
        # API Keys
        self.nvidia_api_key: str = _api_key

        # Upstream generation service
        self.molmim_url: str = os.getenv(
            "MOLMIM_URL",
            "https://health.api.nvidia.com/v1/biology/nvidia/molmim/generate"
        )
        self.request_timeout: float = float(os.getenv("REQUEST_TIMEOUT", "120"))

        # Where the orchestrator reaches the proxy when run out of process
        self.proxy_url: str = os.getenv(
            "PROXY_URL", "http://localhost:8000/api/generate-molecules"
        )

        # Displayed-state sessions kept in memory before the oldest is dropped
        self.max_sessions: int = int(os.getenv("MAX_SESSIONS", "1000"))

        # 2D rendering bounds (pixels)
        self.render_default_size: int = 300
        self.render_min_size: int = 50
        self.render_max_size: int = 2000

        # Paths
        self.base_dir: Path = Path(__file__).parent.parent
        self.data_dir: Path = self.base_dir / "data"

        # Database
        self.database_url: str = os.getenv(
            "DATABASE_URL", f"sqlite:///{self.data_dir / 'molgen.db'}"
        )

        # Generation objective (fixed for every request)
        self.generation_algorithm: str = "CMA-ES"
        self.generation_property: str = "QED"
        self.generation_minimize: bool = False

        # Form defaults
        self.default_seed_smiles: str = "CCN(CC)C(=O)[C@@]1(C)Nc2c(ccc3ccccc23)C[C@H]1N(C)C"
        self.default_num_molecules: str = "10"
        self.default_min_similarity: str = "0.3"
        self.default_particles: str = "30"
        self.default_iterations: str = "10"

        # CORS
        self.allowed_origins: list = os.getenv("ALLOWED_ORIGINS", "*").split(",")


settings = Settings()

# Ensure directories exist
settings.data_dir.mkdir(parents=True, exist_ok=True)
