#!/usr/bin/env python3
"""
Demo script for the request optimizer.

This script walks through caching, model selection, multi-objective
optimization and telemetry on in-process stores. Provider calls are served by
canned offline providers, so neither Redis nor API keys are needed.
"""

import asyncio
import json

from request_optimizer import Objective, TaskRequirements, build_memory_layer
from request_optimizer.dto import CompletionResult, SearchArticle, SearchResult, TokenUsage


class CannedSearchProvider:
    """Offline stand-in for Tavily."""

    provider_type = "tavily"

    async def search(self, query, depth="advanced", max_results=50, days=None, include_answer=False):
        await asyncio.sleep(0.2)
        return SearchResult(
            query=query,
            articles=[
                SearchArticle(title=f"{query.title()} - live updates", url="https://news.example/1", score=0.92),
                SearchArticle(title=f"Analysis: {query}", url="https://news.example/2", score=0.71),
                SearchArticle(title="Unrelated press release", url="https://news.example/3", score=0.12),
            ],
        )


class CannedCompletionProvider:
    """Offline stand-in for OpenAI."""

    provider_type = "openai"

    async def complete(self, model, messages, temperature, max_tokens, response_format=None):
        await asyncio.sleep(0.4)
        content = json.dumps({"events": [{"name": "summit", "location": "Geneva"}]})
        return CompletionResult(
            model=model,
            content=content,
            structured=json.loads(content) if response_format == "json_object" else None,
            usage=TokenUsage(prompt_tokens=850, completion_tokens=120, total_tokens=970),
        )


def print_section(title: str) -> None:
    """Print a section header."""
    print("\n" + "=" * 70)
    print(f"  {title}")
    print("=" * 70)


async def demo_search_cache(layer) -> None:
    """Demonstrate pooled and cached searches."""
    print_section("Search Deduplication & Caching")

    queries = [
        ("Ceasefire talks", "live"),
        ("  ceasefire TALKS!", "live"),  # same normalized query
        ("Ceasefire talks", "news"),  # different query type, separate entry
    ]

    for query, query_type in queries:
        result = await layer.gateway.search(query, {"query_type": query_type})
        status = "✓ HIT" if result.cached else "✗ MISS"
        print(f"\n  Query: '{query}' ({query_type})")
        print(f"  {status} - {len(result.data['articles'])} articles above min score")

    layer.pool.clear()
    result = await layer.gateway.search("ceasefire talks", {"query_type": "live"})
    print("\n  After clearing the query pool:")
    print(f"  {'✓ served from cache' if result.cached else '✗ provider called again'}")

    stats = await layer.cache.get_stats()
    print("\n📊 Cache stats:")
    print(f"  Entries: {stats.total_entries}, Hits: {stats.total_hits}, Hit rate: {stats.hit_rate:.2%}")


async def demo_model_selection(layer) -> None:
    """Demonstrate model selection presets."""
    print_section("Model Selection")

    scenarios = [
        ("Batch", layer.selector.select_for_batch("event_extraction", 40000)),
        ("Realtime", layer.selector.select_for_realtime("event_extraction", 4000)),
        ("High quality", layer.selector.select_for_high_quality("query_optimization", 4000)),
        (
            "Custom",
            layer.selector.select_model(
                TaskRequirements(task_type="causal_chain", input_size=4000, max_latency=2000)
            ),
        ),
    ]

    for label, pending in scenarios:
        selection = await pending
        print(f"\n  {label}: {selection.config.model} (max_tokens={selection.config.max_tokens})")
        print(f"    Confidence: {selection.confidence:.0%}")
        print(f"    Reasoning: {selection.reasoning}")

    optimization = await layer.predictor.optimize_api_config("event_extraction", 4000)
    print("\n💡 Config optimization for event_extraction:")
    print(f"  {optimization.original_config.max_tokens} -> {optimization.optimized_config.max_tokens} max tokens")
    print(f"  Cost savings: {optimization.cost_savings:.1f}%  Verdict: {optimization.recommendation}")


async def demo_multi_objective(layer) -> None:
    """Demonstrate Pareto optimization."""
    print_section("Multi-Objective Optimization")

    objectives = [
        Objective("cost", weight=0.4, minimize=True),
        Objective("quality", weight=0.4, target_value=0.8),
        Objective("latency", weight=0.2, minimize=True),
    ]
    result = await layer.optimizer.optimize(objectives, "event_extraction", 4000)

    print(f"\n{'Model':<14} {'Tokens':<8} {'Cost':<10} {'Quality':<9} {'Latency':<10} {'Score':<7} Pareto")
    print("-" * 70)
    for solution in result.solutions:
        values = solution.objectives
        print(
            f"{solution.config.model:<14} "
            f"{solution.config.max_tokens:<8} "
            f"${values['cost']:<9.4f} "
            f"{values['quality']:<9.2f} "
            f"{values['latency']:<10.0f} "
            f"{solution.score:<7.3f} "
            f"{'✓' if not solution.dominated else ''}"
        )

    print("\n🔗 Trade-offs:")
    for analysis in result.trade_off_analysis:
        print(f"  {analysis.description}")


async def demo_telemetry(layer) -> None:
    """Demonstrate completions flowing into telemetry."""
    print_section("Telemetry")

    messages = [{"role": "user", "content": "Extract the events: leaders met in Geneva on Monday."}]
    for _ in range(3):
        await layer.gateway.complete(
            "event_extraction",
            messages,
            {"model": "gpt-4o-mini", "response_format": "json_object"},
        )

    print(f"\n{'Provider':<10} {'Endpoint':<14} {'Calls':<7} {'Hit rate':<10} {'p95 ms':<9} Cost")
    print("-" * 70)
    for window in await layer.telemetry.get_metrics(hours=1):
        print(
            f"{window.provider_type:<10} "
            f"{window.endpoint:<14} "
            f"{window.total_calls:<7} "
            f"{window.cache_hit_rate:<10.2%} "
            f"{window.p95_latency_ms:<9.1f} "
            f"${window.estimated_cost:.4f}"
        )

    summary = await layer.telemetry.summary(hours=1)
    print(f"\n  Total: {summary.total_calls} calls, ${summary.total_cost:.4f}, {summary.total_errors} errors")


async def main() -> None:
    """Run all demos."""
    print("\n🚀 Request Optimizer Demo")
    print("=" * 70)
    print("This demo runs the optimization layer on in-memory stores")
    print("with offline providers")

    layer = build_memory_layer(
        search_provider=CannedSearchProvider(),
        completion_provider=CannedCompletionProvider(),
    )

    try:
        await demo_search_cache(layer)
        await demo_model_selection(layer)
        await demo_multi_objective(layer)
        await demo_telemetry(layer)

        print("\n" + "=" * 70)
        print("✅ Demo completed successfully!")
        print("=" * 70)

    except Exception as e:
        print(f"\n❌ Error: {e}")
        raise
    finally:
        await layer.aclose()


if __name__ == "__main__":
    asyncio.run(main())
