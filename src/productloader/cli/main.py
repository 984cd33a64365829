import asyncio
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as package_version
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from productloader.models import SearchResult
from productloader.products import ProductsLoader
from productloader.utils.logging import setup_logging

app = typer.Typer(no_args_is_help=True)


def spreadsheet_option():
    return typer.Option(
        "--spreadsheet",
        "-s",
        help="The spreadsheet to read products from",
        envvar="PRODUCTLOADER_SPREADSHEET",
    )


def print_result(result: SearchResult | None, title: str):
    console = Console()
    if result is None:
        console.print(f"[red]No result available[/red] for {title}")
        return
    table = Table("SKU", "Title", "Price", "Image URL", title=title)
    for product in result.products:
        table.add_row(
            product.sku,
            product.title,
            f"{product.price.amount:.2f} {product.price.currency}",
            product.image_url,
        )
    console.print(table)
    console.print(f"total={result.total} offset={result.offset} limit={result.limit}")


async def _run_loads(spreadsheet: str, keys: list[dict]) -> list[SearchResult | None]:
    loader = ProductsLoader({"SPREADSHEET": spreadsheet})
    try:
        return await loader.load_many(keys)
    finally:
        await loader.close()


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log batch activity")] = False,
):
    """Batched, cached product lookups against a spreadsheet"""
    setup_logging(verbose=verbose)


@app.command(name="search")
def search_products(
    term: Annotated[str, typer.Argument(help="Substring searched in product titles")],
    spreadsheet: Annotated[str, spreadsheet_option()],
    page: Annotated[int, typer.Option(help="The current page")] = 0,
    page_size: Annotated[int, typer.Option(help="The page size")] = 20,
):
    """Search products by title"""
    key = {"search": term, "currentPage": page, "pageSize": page_size}
    [result] = asyncio.run(_run_loads(spreadsheet=spreadsheet, keys=[key]))
    print_result(result=result, title=f"Search: {term}")
    if result is None:
        raise typer.Exit(1)


@app.command(name="get")
def get_products(
    skus: Annotated[list[str], typer.Argument(help="One or more product SKUs")],
    spreadsheet: Annotated[str, spreadsheet_option()],
):
    """Get products by SKU, each SKU loaded as its own key in one batch"""
    keys = [
        {"filter": {"sku": {"eq": sku}}, "currentPage": 0, "pageSize": 1} for sku in skus
    ]
    results = asyncio.run(_run_loads(spreadsheet=spreadsheet, keys=keys))
    for sku, result in zip(skus, results, strict=True):
        print_result(result=result, title=f"SKU: {sku}")
    if any(result is None for result in results):
        raise typer.Exit(1)


@app.command()
def version():
    """Get the version of the package"""
    try:
        typer.echo(package_version("productloader"))
    except PackageNotFoundError:
        typer.echo("unknown")
    raise typer.Exit()
