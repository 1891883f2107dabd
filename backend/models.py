"""
Pydantic models for Molecule Generation Studio
"""
import math
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Union
from datetime import datetime

from config import settings


Number = Union[int, float]


def _finite_or_none(value):
    """Non-finite floats have no JSON representation; store them as null."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


class GenerationFormInput(BaseModel):
    """Raw form state exactly as typed by the user"""
    smiles: str = Field(default=settings.default_seed_smiles, description="Seed structure (SMILES)")
    num_molecules: str = Field(default=settings.default_num_molecules, description="Number of molecules")
    min_similarity: str = Field(default=settings.default_min_similarity, description="Min similarity")
    particles: str = Field(default=settings.default_particles, description="Particles")
    iterations: str = Field(default=settings.default_iterations, description="Iterations")

    class Config:
        json_schema_extra = {
            "example": {
                "smiles": "CCN(CC)C(=O)[C@@]1(C)Nc2c(ccc3ccccc23)C[C@H]1N(C)C",
                "num_molecules": "10",
                "min_similarity": "0.3",
                "particles": "30",
                "iterations": "10"
            }
        }


class GenerationRequest(BaseModel):
    """Coerced generation parameters; numeric fields may be NaN"""
    seed_structure: str
    num_candidates: Number
    min_similarity: Number
    particle_count: Number
    iteration_count: Number

    class Config:
        frozen = True


class GenerationPayload(BaseModel):
    """Body of POST /api/generate-molecules, in the upstream service's shape"""
    algorithm: str = settings.generation_algorithm
    num_molecules: Number
    property_name: str = settings.generation_property
    minimize: bool = settings.generation_minimize
    min_similarity: Number
    particles: Number
    iterations: Number
    smi: str

    def to_wire(self) -> dict:
        """JSON-safe body; NaN fields go out as null like a browser would send them"""
        return {key: _finite_or_none(value) for key, value in self.model_dump().items()}


class GeneratedCandidate(BaseModel):
    """A generated molecule; id is only meaningful within its batch"""
    id: str
    structure: str
    score: Optional[float] = None

    @field_validator("score", mode="before")
    @classmethod
    def _drop_non_finite(cls, value):
        return _finite_or_none(value)


class HistoryRequestParams(BaseModel):
    """Request parameters as stored alongside a history record"""
    smiles: str
    num_molecules: Optional[Number] = None
    min_similarity: Optional[Number] = None
    particles: Optional[Number] = None
    iterations: Optional[Number] = None

    @field_validator("num_molecules", "min_similarity", "particles", "iterations", mode="before")
    @classmethod
    def _drop_non_finite(cls, value):
        return _finite_or_none(value)


class HistoryRecord(BaseModel):
    """A persisted generation request and its candidates"""
    id: str
    owner_user_id: str
    request_params: HistoryRequestParams
    generated_molecules: List[GeneratedCandidate] = []
    created_at: Optional[datetime] = None

    class Config:
        frozen = True


class AuthContext(BaseModel):
    """Authenticated caller, passed explicitly into the orchestrator"""
    user_id: str
    email: Optional[str] = None


class UserCreate(BaseModel):
    """Directory entry for a user"""
    email: str
    first_name: str = ""
    last_name: str = ""


class UserProfile(BaseModel):
    """A user as returned by the directory"""
    id: str
    email: str
    first_name: str = ""
    last_name: str = ""


class GenerationSessionState(BaseModel):
    """What one user's generation page is currently showing"""
    molecules: List[GeneratedCandidate] = []
    history: List[HistoryRecord] = []
    loading: bool = False
    alert: Optional[str] = None
    warning: Optional[str] = None
    sequence: int = 0
