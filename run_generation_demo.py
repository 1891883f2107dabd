#!/usr/bin/env python3
"""
Standalone Generation Demo

Submits the default generation form through the orchestrator against a running
proxy (PROXY_URL, default http://localhost:8000/api/generate-molecules) and
reports the normalised candidates. Start the API first with `python main.py`
from the backend directory and an NVIDIA_API_KEY in the environment.

Usage:
    python run_generation_demo.py [SMILES]
"""

import asyncio
import sys
from pathlib import Path
from datetime import datetime

# Add backend to path
backend_path = Path(__file__).parent / "backend"
sys.path.insert(0, str(backend_path))


def print_header(text):
    print("\n" + "=" * 60)
    print(text)
    print("=" * 60)


def print_result(test_name, passed, details=""):
    status = "PASS" if passed else "FAIL"
    symbol = "[✓]" if passed else "[✗]"
    print(f"  {symbol} {test_name}: {status}")
    if details:
        print(f"      {details}")


async def run_generation_demo(seed_smiles=None):
    """Run one generation round trip and check the normalised result"""
    from config import settings
    from database import create_session_factory
    from models import GenerationFormInput
    from services.generation_orchestrator import GenerationOrchestrator, build_generation_request, build_payload
    from services.history_store import HistoryStore
    from services.structure_renderer import StructureRenderer, StructureRenderError

    print_header("Molecule Generation Studio - Generation Demo")
    print(f"Run Date: {datetime.now().isoformat()}")
    print(f"Proxy: {settings.proxy_url}")

    results = {"passed": 0, "failed": 0}

    form = GenerationFormInput(smiles=seed_smiles) if seed_smiles else GenerationFormInput()
    print_header("1. Request")
    print(f"  {build_payload(build_generation_request(form)).to_wire()}")

    # Throwaway store, the demo never touches real history
    orchestrator = GenerationOrchestrator(HistoryStore(create_session_factory("sqlite://")))
    session = orchestrator.open_session(None)

    print_header("2. Generation")
    state = await orchestrator.submit(session, form)

    succeeded = state.alert is None
    print_result("Generation round trip", succeeded, state.alert or f"{len(state.molecules)} molecules")
    results["passed" if succeeded else "failed"] += 1

    unique_ids = len({m.id for m in state.molecules}) == len(state.molecules)
    print_result("Candidate ids unique", unique_ids)
    results["passed" if unique_ids else "failed"] += 1

    print_header("3. Rendering")
    renderer = StructureRenderer()
    renderable = 0
    for molecule in state.molecules:
        try:
            renderer.to_svg(molecule.structure)
            renderable += 1
        except StructureRenderError:
            pass

    all_renderable = renderable == len(state.molecules)
    print_result("Candidates render as 2D diagrams", all_renderable, f"{renderable}/{len(state.molecules)}")
    results["passed" if all_renderable else "failed"] += 1

    if state.molecules:
        print_header("SAMPLE OUTPUT: Generated Molecules")
        for i, molecule in enumerate(state.molecules, 1):
            score = f"{molecule.score:.3f}" if molecule.score is not None else "n/a"
            print(f"  {i:2d}. QED {score}  {molecule.structure}")

    print_header("SUMMARY")
    print(f"Passed: {results['passed']}")
    print(f"Failed: {results['failed']}")
    return results


if __name__ == "__main__":
    try:
        results = asyncio.run(run_generation_demo(sys.argv[1] if len(sys.argv) > 1 else None))
        sys.exit(0 if results["failed"] == 0 else 1)
    except Exception as e:
        print(f"\nFATAL ERROR: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)
