"""
Command line entry point.

    dvid-mesh fetch FRAGMENT_ID [--out FILE]
    dvid-mesh skeleton BODY_ID [--out FILE]

Connection settings come from ``DVID_``-prefixed environment variables.
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

import numpy as np

from .client import DVIDClient
from .core.config import get_config
from .core.exceptions import DVIDError
from .core.utils import get_logger, setup_logging
from .external.session import close_aiohttp_session

logger = get_logger(__name__)


async def fetch_fragment(client: DVIDClient, fragment_id: str, out: Path) -> None:
    geometry = await client.meshes.assemble(fragment_id)
    np.savez(
        out,
        positions=geometry.positions,
        indices=geometry.indices,
        vertex_offsets=np.asarray(geometry.vertex_offsets, dtype=np.uint64),
        keys=np.asarray(geometry.keys, dtype=str),
    )
    logger.info(
        f"Saved fragment {fragment_id} to {out}: {geometry.num_vertices} vertices, "
        f"{geometry.num_triangles} triangles from {geometry.num_leaves} leaves"
    )


async def fetch_skeleton(client: DVIDClient, body_id: str, out: Path) -> None:
    skeleton = await client.skeletons.download(body_id)
    np.savez(
        out,
        node_ids=skeleton.node_ids,
        positions=skeleton.positions,
        radii=skeleton.radii,
        edges=skeleton.edges,
    )
    logger.info(f"Saved skeleton {body_id} to {out}: {skeleton.num_nodes} nodes")


async def main(args: argparse.Namespace) -> int:
    """Run one command; returns the process exit code."""
    config = get_config()
    try:
        async with DVIDClient(config) as client:
            try:
                if args.command == "fetch":
                    await fetch_fragment(client, args.fragment_id,
                                         args.out or Path(f"{args.fragment_id}.npz"))
                else:
                    await fetch_skeleton(client, args.body_id,
                                         args.out or Path(f"{args.body_id}_skeleton.npz"))
            except DVIDError as e:
                logger.error(f"{args.command} failed: {e}")
                return 1
    finally:
        await close_aiohttp_session()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dvid-mesh",
        description="Fetch meshes and skeletons from a DVID server"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    fetch = subparsers.add_parser("fetch", help="Assemble a mesh fragment and save it as .npz")
    fetch.add_argument("fragment_id", help="Fragment (body) id")
    fetch.add_argument("--out", type=Path, help="Output file (default: <fragment_id>.npz)")

    skeleton = subparsers.add_parser("skeleton", help="Download a body's SWC skeleton as .npz")
    skeleton.add_argument("body_id", help="Body id")
    skeleton.add_argument("--out", type=Path, help="Output file (default: <body_id>_skeleton.npz)")
    return parser


def cli(argv: Optional[List[str]] = None) -> None:
    """Console script entry point."""
    args = build_parser().parse_args(argv)

    # Initialize logging based on config
    config = get_config()
    setup_logging(log_level=config.log_level, log_dir=config.log_dir)

    sys.exit(asyncio.run(main(args)))


if __name__ == "__main__":
    cli()
