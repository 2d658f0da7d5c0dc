"""This example streams data produced on another thread to an upload server.

The producer writes blocks into a ``PushStream`` while the client uploads them
in chunks. The producer is paused while each chunk is in flight, so memory use
stays bounded no matter how fast data is produced.
"""

import argparse
import os
import threading

from tqdm import tqdm

from uploadx import PushStream, UploadxClient


def produce(stream: PushStream, total_size: int, block_size: int) -> None:
    written = 0
    try:
        while written < total_size:
            block = os.urandom(min(block_size, total_size - written))
            stream.write(block)
            written += len(block)
        stream.end()
    except Exception as exc:
        stream.fail(exc)


def main(endpoint: str, total_size: int, chunk_size: int) -> None:
    stream = PushStream()
    producer = threading.Thread(
        target=produce, args=(stream, total_size, 64 * 1024), daemon=True
    )
    producer.start()

    with UploadxClient({"chunk_size": chunk_size}) as client, tqdm(
        total=total_size, unit="B", unit_scale=True
    ) as pbar:

        def on_progress(fraction: float) -> None:
            pbar.n = int(fraction * total_size)
            pbar.refresh()

        result = client.upload(
            endpoint,
            stream,
            {"name": "random.bin", "size": total_size},
            on_progress=on_progress,
        )

    print(f"Session: {result.url}")
    print(f"Uploaded {result.uploaded_bytes}/{result.total_size} bytes")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Stream random data to a server")
    parser.add_argument("endpoint", help="Upload endpoint URL")
    parser.add_argument("--size", type=int, default=50 * 1024 * 1024)
    parser.add_argument("--chunk-size", type=int, default=8 * 1024 * 1024)
    args = parser.parse_args()
    main(args.endpoint, args.size, args.chunk_size)
