#!/usr/bin/env python3
"""
Benchmark script for the LSH clone index.

Indexes a synthetic codebase with planted clones and reports indexing
throughput, query latency and how many planted clones were clustered.
"""

import random
import statistics
import time
from typing import Dict, List, Tuple

import click

from clonelsh import CloneEngine, EngineConfig, SourceBlock
from clonelsh.config import EmbeddingConfig, LSHConfig
from clonelsh.utils.logging_setup import setup_logging

VERBS = ["load", "save", "parse", "render", "validate", "merge", "fetch", "build"]
NOUNS = ["user", "order", "invoice", "report", "session", "widget", "profile", "cart"]


def generate_function(i: int, complexity: str = 'medium') -> str:
    """Generate one synthetic TypeScript function."""
    rng = random.Random(i)
    name = f"{rng.choice(VERBS)}{rng.choice(NOUNS).title()}{i}"
    field = rng.choice(NOUNS)
    if complexity == 'simple':
        return f'''function {name}(first, second) {{
    const total = first.{field} + second.{field} + {i};
    return total * {rng.randint(2, 9)};
}}'''
    if complexity == 'medium':
        return f'''function {name}(items, options) {{
    if (!items || items.length === 0) {{
        return [];
    }}
    const result = [];
    for (const item of items) {{
        if (item.{field} > {i}) {{
            result.push(item.{field} * options.scale);
        }} else {{
            result.push(item.{field} - {rng.randint(1, 99)});
        }}
    }}
    return result;
}}'''
    return f'''async function {name}(client, ids, retries = 3) {{
    const results = new Map();
    for (const id of ids) {{
        let attempt = 0;
        while (attempt < retries) {{
            try {{
                const response = await client.get('/{field}/' + id);
                results.set(id, response.data.{field});
                break;
            }} catch (error) {{
                attempt += 1;
                if (attempt >= retries) {{
                    results.set(id, null);
                }}
            }}
        }}
    }}
    return results;
}}'''


def rename_identifiers(code: str, i: int) -> str:
    """Type-2 style copy: same structure, different local names."""
    return (code.replace("result", f"output{i}")
                .replace("items", "entries")
                .replace("total", "sum"))


def generate_codebase(num_files: int, functions_per_file: int, duplicate_ratio: float,
                      complexity: str, seed: int = 0) -> Tuple[Dict[str, List[str]], List[Tuple[str, int, str, int]]]:
    """
    Build files of functions with planted clones.

    Returns:
        (files, planted) where ``planted`` lists (file, index, original_file, original_index)
    """
    rng = random.Random(seed)
    files: Dict[str, List[str]] = {}
    originals: List[Tuple[str, int, str]] = []
    planted: List[Tuple[str, int, str, int]] = []
    counter = 0
    for f in range(num_files):
        path = f"src/module_{f}.ts"
        functions: List[str] = []
        for n in range(functions_per_file):
            if originals and rng.random() < duplicate_ratio:
                src_path, src_index, src_code = rng.choice(originals)
                code = src_code if rng.random() < 0.5 else rename_identifiers(src_code, counter)
                planted.append((path, n, src_path, src_index))
            else:
                code = generate_function(counter, complexity)
                originals.append((path, n, code))
            functions.append(code)
            counter += 1
        files[path] = functions
    return files, planted


def to_blocks(functions: List[str]) -> List[SourceBlock]:
    blocks = []
    line = 1
    for code in functions:
        blocks.append(SourceBlock(content=code, start_line=line, kind="function"))
        line += code.count("\n") + 2
    return blocks


@click.command()
@click.option('--num-files', default=20, help='Number of files to generate')
@click.option('--functions-per-file', default=25, help='Functions per file')
@click.option('--duplicate-ratio', default=0.2, help='Ratio of planted clones')
@click.option('--complexity', type=click.Choice(['simple', 'medium', 'complex']), default='medium')
@click.option('--num-tables', default=20, help='LSH tables (L)')
@click.option('--num-bits', default=12, help='Bits per table (K)')
@click.option('--dimension', default=384, help='Embedding dimension')
@click.option('--model', type=click.Choice(['tfidf', 'hashing']), default='tfidf')
@click.option('--min-similarity', default=0.85, help='Cluster similarity threshold')
@click.option('--queries', default=50, help='Number of timed queries')
@click.option('--log-level', default='WARNING')
def benchmark(num_files, functions_per_file, duplicate_ratio, complexity, num_tables,
              num_bits, dimension, model, min_similarity, queries, log_level):
    """Run performance benchmark on a synthetic codebase."""
    setup_logging(level=log_level)

    click.echo("🏃 LSH Clone Index Benchmark")
    click.echo("=" * 50)

    files, planted = generate_codebase(num_files, functions_per_file, duplicate_ratio, complexity)
    total_functions = num_files * functions_per_file
    click.echo(f"\n🔨 Synthetic codebase:")
    click.echo(f"  - Files: {num_files}")
    click.echo(f"  - Functions: {total_functions}")
    click.echo(f"  - Planted clones: {len(planted)}")
    click.echo(f"  - Complexity: {complexity}")

    config = EngineConfig(
        lsh=LSHConfig(num_tables=num_tables, num_bits=num_bits, dimension=dimension),
        embedding=EmbeddingConfig(model_type=model, dimension=dimension),
    )
    engine = CloneEngine(config)

    # Indexing
    click.echo(f"\n🔍 Indexing...")
    ids: Dict[Tuple[str, int], str] = {}
    start_time = time.perf_counter()
    for path, functions in files.items():
        blocks = to_blocks(functions)
        summary = engine.index_blocks(blocks, path)
        by_line = {block_id.split(":")[1].split("-")[0]: block_id for block_id in summary.block_ids}
        for n, block in enumerate(blocks):
            if str(block.start_line) in by_line:
                ids[(path, n)] = by_line[str(block.start_line)]
    index_time = time.perf_counter() - start_time

    stats = engine.get_stats()
    click.echo(f"✅ Indexed {stats['total_blocks']} blocks in {index_time:.2f}s")
    click.echo(f"  - Blocks/second: {stats['total_blocks'] / index_time:.0f}")
    click.echo(f"  - Buckets: {stats['lsh']['total_buckets']}")
    click.echo(f"  - Avg bucket size: {stats['lsh']['avg_bucket_size']:.2f}")
    click.echo(f"  - Rejected inserts: {stats['lsh']['rejected_inserts']}")

    # Queries
    rng = random.Random(1)
    all_functions = [code for functions in files.values() for code in functions]
    sample = [rng.choice(all_functions) for _ in range(queries)]
    latencies = []
    candidates = []
    for code in sample:
        result = engine.query(code)
        latencies.append(result.duration_ms)
        candidates.append(result.candidates_retrieved)

    click.echo(f"\n⚡ Query latency ({len(latencies)} queries):")
    click.echo(f"  - Mean: {statistics.mean(latencies):.2f}ms")
    click.echo(f"  - Median: {statistics.median(latencies):.2f}ms")
    click.echo(f"  - Max: {max(latencies):.2f}ms")
    click.echo(f"  - Candidates/query: {statistics.mean(candidates):.1f}")

    # Clustering
    start_time = time.perf_counter()
    clusters = engine.find_all_clones(min_similarity)
    cluster_time = time.perf_counter() - start_time
    cluster_of = {block_id: c.id for c in clusters for block_id in c.block_ids}

    found = 0
    for path, n, src_path, src_index in planted:
        a, b = ids.get((path, n)), ids.get((src_path, src_index))
        if a and b and cluster_of.get(a) is not None and cluster_of.get(a) == cluster_of.get(b):
            found += 1
    recall = found / len(planted) * 100 if planted else 0.0

    click.echo(f"\n🎯 Clustering (min similarity {min_similarity}):")
    click.echo(f"  - Time: {cluster_time:.2f}s")
    click.echo(f"  - Clusters: {len(clusters)}")
    click.echo(f"  - Largest cluster: {max((c.size for c in clusters), default=0)}")
    click.echo(f"  - Planted clones found: {found}/{len(planted)}")
    click.echo(f"  - Recall: {recall:.1f}%")

    click.echo(f"\n✨ Benchmark complete!")


if __name__ == '__main__':
    benchmark()
