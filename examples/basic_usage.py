"""
Example: deduplicating URLs across worker processes with a shared filter.
"""
import asyncio
import os

from remote_bloom import Murmur3Hash, RedisBloomFilterClient


async def main():
    """Mark a batch of URLs as seen and report which were already crawled."""
    client = await RedisBloomFilterClient.create(
        url=os.environ.get("REDIS_URL", "redis://localhost:6379"),
        bit_array_size=100_000,
        hash_count=5,
        hash_function1=Murmur3Hash(0),
        hash_function2=Murmur3Hash(1),
        # Uncomment for a TLS endpoint with a self-signed certificate
        # check_server_identity=False,
    )

    async with client:
        seen = client.get("crawler:seen-urls")

        batch = [
            "https://example.com/",
            "https://example.com/about",
            "https://example.com/blog",
        ]
        already_seen = await seen.extract_contained_items(*batch)
        fresh = [url for url in batch if url not in already_seen]

        print(f"Already crawled: {sorted(already_seen)}")
        print(f"Crawling: {fresh}")

        await seen.add(*fresh)


if __name__ == "__main__":
    asyncio.run(main())
