from __future__ import annotations
import logging
from typing import Optional
import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table
from frigo import review
from frigo.backend import SupabaseBackend
from frigo.catalog import IngredientCatalog
from frigo.config import Config
from frigo.drafts import DraftManager
from frigo.errors import BackendError, IngestionError, PersistenceError
from frigo.formatter import format_recipe, format_saved_recipe
from frigo.models import BookMetadata, CatalogIngredient, ProcessedIngredient, ProcessedRecipe
from frigo.pipeline import (
    Edited,
    IngestionPipeline,
    IngestionSource,
    PipelineState,
    Stage,
    transition,
)
from frigo.sources import check_url
from frigo.writer import load_recipe

console = Console()
err_console = Console(stderr=True)

user_option = click.option(
    "--user", "user_id", envvar="FRIGO_USER_ID", required=True,
    help="Frigo user id the recipe belongs to (or set FRIGO_USER_ID)",
)
book_option = click.option("--book", "book_title", default=None, help="Cookbook the recipe comes from")
page_option = click.option("--page", type=int, default=None, help="Page number in the cookbook")


def _load_config() -> Config:
    try:
        return Config()
    except ValidationError:
        err_console.print("[red]Error:[/red] ANTHROPIC_API_KEY environment variable is not set.")
        raise SystemExit(1)


def _open_backend(config: Config) -> SupabaseBackend:
    try:
        return SupabaseBackend.from_config(config)
    except BackendError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def cli(verbose: bool):
    """Frigo: recipe URL or cookbook photo to a structured recipe."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=err_console, show_path=False)],
        )


@cli.command()
@click.argument("url")
def check(url: str):
    """Check whether a URL can be imported, without fetching it."""
    try:
        result = check_url(url)
    except IngestionError as e:
        err_console.print(f"[red]✗[/red] {e}")
        raise SystemExit(1)
    console.print(f"[green]✓[/green] {result.site_name} ({result.domain})")
    if result.warning:
        console.print(f"[yellow]![/yellow] {result.warning}")


def _choices(ingredient: ProcessedIngredient, catalog: IngredientCatalog) -> list[CatalogIngredient]:
    ids: list[str] = []
    for ingredient_id in [ingredient.ingredient_id, *ingredient.variant_ids, *ingredient.candidate_ids]:
        if ingredient_id and ingredient_id not in ids:
            ids.append(ingredient_id)
    return [entry for entry in (catalog.get(i) for i in ids) if entry is not None]


def _review_ingredient(
    recipe: ProcessedRecipe,
    index: int,
    catalog: IngredientCatalog,
    backend: SupabaseBackend,
) -> ProcessedRecipe:
    ingredient = recipe.ingredients_with_matches[index]
    options = _choices(ingredient, catalog)

    console.print(f"\n  [bold]{escape(ingredient.original_text)}[/bold]")
    if ingredient.match_notes:
        console.print(f"  [dim]{escape(ingredient.match_notes)}[/dim]")
    for n, entry in enumerate(options, start=1):
        current = " [dim](current)[/dim]" if entry.id == ingredient.ingredient_id else ""
        console.print(f"    {n}. {escape(entry.name)}{current}")
    console.print("    n. Add a new catalog ingredient")

    can_keep = ingredient.ingredient_id is not None or ingredient.is_optional
    hint = "number, n, or Enter to keep" if can_keep else "number or n"
    while True:
        answer = click.prompt(
            f"  Choice ({hint})",
            default="" if can_keep else None,
            show_default=False,
        ).strip().lower()
        if not answer and can_keep:
            return recipe
        if answer == "n":
            name = click.prompt("  New ingredient name", default=ingredient.ingredient_name).strip()
            try:
                return review.create_and_resolve(recipe, index, catalog, backend, name)
            except PersistenceError as e:
                console.print(f"  [red]✗[/red] {e}")
                continue
        if answer.isdigit() and 1 <= int(answer) <= len(options):
            return review.resolve_ingredient(recipe, index, options[int(answer) - 1].id, catalog)
        console.print("  [yellow]Please pick one of the listed options.[/yellow]")


def _review(recipe: ProcessedRecipe, catalog: IngredientCatalog, backend: SupabaseBackend) -> ProcessedRecipe:
    console.print()
    console.print(format_recipe(recipe), markup=False, highlight=False)
    console.print(
        f"\n[dim]{recipe.match_rate():.0%} of ingredients matched, "
        f"extraction confidence {recipe.extraction_confidence()}%[/dim]"
    )
    if recipe.needs_ownership_verification and recipe.book_metadata:
        console.print(
            f"[yellow]![/yellow] '{escape(recipe.book_metadata.book_title or '')}' is not in your books yet; "
            "saving will add it."
        )

    title = click.prompt("\n  Title", default=recipe.recipe.title).strip()
    if title and title != recipe.recipe.title:
        recipe = review.rename(recipe, title)

    flagged = sorted(
        index for index, _ in review.needing_review(recipe) + review.needing_choice(recipe)
    )
    if flagged:
        console.print(f"\n[bold]{len(flagged)}[/bold] ingredients to check.")
    for index in flagged:
        recipe = _review_ingredient(recipe, index, catalog, backend)
    return recipe


def _catalog(pipeline: IngestionPipeline) -> IngredientCatalog:
    if pipeline.catalog is not None:
        return pipeline.catalog
    try:
        return IngredientCatalog.load(pipeline.backend)
    except IngestionError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)


def _with_book(
    pipeline: IngestionPipeline,
    recipe: ProcessedRecipe,
    user_id: str,
    book_title: str,
    page: Optional[int] = None,
) -> ProcessedRecipe:
    current = recipe.book_metadata
    metadata = BookMetadata(
        book_title=book_title.strip(),
        author=current.author if current and current.book_title == book_title.strip() else None,
        page_number=page if page is not None else (current.page_number if current else None),
    )
    try:
        recipe = pipeline.attach_book(recipe, metadata, user_id)
    except IngestionError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)
    console.print(f"[green]✓[/green] Linked to [bold]{escape(metadata.book_title)}[/bold]")
    return recipe


def _finish(
    pipeline: IngestionPipeline,
    state: PipelineState,
    user_id: str,
    source_label: str,
    assume_yes: bool,
    book_title: Optional[str] = None,
    page: Optional[int] = None,
    ask_for_book: bool = False,
) -> None:
    if state.stage is not Stage.REVIEWING or state.recipe is None:
        err_console.print(f"[red]Error:[/red] {state.error}")
        raise SystemExit(1)

    drafts = DraftManager(base_dir=pipeline.config.drafts_dir)
    recipe = state.recipe
    if not book_title and ask_for_book and recipe.book_id is None and not assume_yes:
        console.print("\n[yellow]![/yellow] No cookbook title was found on the page.")
        book_title = click.prompt(
            "  Which cookbook is this from? (Enter to skip)", default="", show_default=False
        ).strip()
    if book_title:
        recipe = _with_book(pipeline, recipe, user_id, book_title, page)
    if not assume_yes:
        recipe = _review(recipe, _catalog(pipeline), pipeline.backend)
    state = transition(state, Edited(recipe=recipe))

    unresolved = review.unresolved_required(recipe)
    if unresolved:
        draft = drafts.new(recipe, user_id, source_label)
        names = ", ".join(i.ingredient_name or i.original_text for i in unresolved)
        err_console.print(f"[red]Error:[/red] Unmatched ingredients: {names}")
        err_console.print(f"Draft kept. Review it and run [bold]frigo save {draft.id}[/bold].")
        raise SystemExit(1)

    if not assume_yes and not click.confirm("\n  Save this recipe?", default=True):
        console.print("Discarded.")
        return

    draft = drafts.new(recipe, user_id, source_label)
    state = pipeline.save(state, user_id)
    if state.stage is not Stage.DONE:
        err_console.print(f"[red]Error:[/red] {state.error}")
        err_console.print(f"Draft kept. Retry with [bold]frigo save {draft.id}[/bold].")
        raise SystemExit(1)
    drafts.mark_saved(draft, state.recipe_id)
    console.print(f"\n[green]✓[/green] Saved [bold]{escape(recipe.recipe.title)}[/bold] ({state.recipe_id})")


@cli.command()
@click.argument("url")
@user_option
@click.option("--force", is_flag=True, help="Import even if the page does not look like a recipe")
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Skip the review prompts and save")
def add(url: str, user_id: str, force: bool, assume_yes: bool):
    """Import a recipe from a web page."""
    config = _load_config()
    with _open_backend(config) as backend:
        pipeline = IngestionPipeline(config, backend)
        source = IngestionSource(kind="url", value=url)
        console.print("[dim]Fetching and structuring...[/dim]")
        state = pipeline.run(source, user_id, allow_non_recipe=force)
        if state.error_type == "NonRecipeUrlWarning" and not assume_yes:
            console.print(f"[yellow]![/yellow] {state.error}")
            if click.confirm("  Import anyway?", default=False):
                state = pipeline.run(source, user_id, allow_non_recipe=True)
        _finish(pipeline, state, user_id, url, assume_yes)


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@user_option
@book_option
@page_option
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Skip the review prompts and save")
def photo(path: str, user_id: str, book_title: Optional[str], page: Optional[int], assume_yes: bool):
    """Import a recipe from a photo of a cookbook page."""
    config = _load_config()
    with _open_backend(config) as backend:
        pipeline = IngestionPipeline(config, backend)
        console.print("[dim]Reading photo...[/dim]")
        state = pipeline.run(IngestionSource(kind="photo", value=path), user_id)
        _finish(pipeline, state, user_id, path, assume_yes, book_title=book_title, page=page, ask_for_book=True)


@cli.command("drafts")
@click.option("--all", "include_saved", is_flag=True, help="Include drafts that were already saved")
def list_drafts(include_saved: bool):
    """Show reviewed recipes that have not been saved yet."""
    config = _load_config()
    drafts = DraftManager(base_dir=config.drafts_dir).list_drafts(include_saved=include_saved)
    if not drafts:
        console.print("No drafts.")
        return

    table = Table(title="Recipe Drafts")
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Source")
    table.add_column("Status")
    for d in drafts:
        status = f"[green]Saved {d.saved_recipe_id}[/green]" if d.saved_recipe_id else "[yellow]Unsaved[/yellow]"
        table.add_row(d.id, d.recipe.recipe.title, d.source, status)
    console.print(table)


@cli.command()
@click.argument("draft_id")
@click.option("--user", "user_id", envvar="FRIGO_USER_ID", default=None, help="Override the draft's user id")
@book_option
@page_option
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Skip the review prompts")
def save(draft_id: str, user_id: Optional[str], book_title: Optional[str], page: Optional[int], assume_yes: bool):
    """Review and save a draft, e.g. after a failed save."""
    config = _load_config()
    drafts = DraftManager(base_dir=config.drafts_dir)
    try:
        draft = drafts.load(draft_id)
    except FileNotFoundError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)
    if draft.saved_recipe_id:
        console.print(f"Already saved as {draft.saved_recipe_id}.")
        return

    with _open_backend(config) as backend:
        pipeline = IngestionPipeline(config, backend)
        user_id = user_id or draft.user_id
        if book_title:
            recipe = _with_book(pipeline, draft.recipe, user_id, book_title, page)
            draft = drafts.update_recipe(draft, recipe)
        if not assume_yes:
            recipe = _review(draft.recipe, _catalog(pipeline), backend)
            draft = drafts.update_recipe(draft, recipe)
        state = PipelineState(stage=Stage.REVIEWING, recipe=draft.recipe)
        state = pipeline.save(state, user_id)
    if state.stage is not Stage.DONE:
        err_console.print(f"[red]Error:[/red] {state.error}")
        raise SystemExit(1)
    drafts.mark_saved(draft, state.recipe_id)
    console.print(f"[green]✓[/green] Saved [bold]{escape(draft.recipe.recipe.title)}[/bold] ({state.recipe_id})")


@cli.command()
@click.argument("recipe_id")
def show(recipe_id: str):
    """Print a saved recipe."""
    config = _load_config()
    with _open_backend(config) as backend:
        try:
            recipe = load_recipe(backend, recipe_id)
        except PersistenceError as e:
            err_console.print(f"[red]Error:[/red] {e}")
            raise SystemExit(1)
    console.print(format_saved_recipe(recipe), markup=False, highlight=False)
