"""Command-line interface for gemfinder.

Provides CLI commands for exploring locations, checking in, organizing
favorites and folders, and viewing stats and maps.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, NoReturn

import click

from gemfinder import __version__
from gemfinder.config import DEFAULT_CONFIG_PATH, load_config

if TYPE_CHECKING:
    from gemfinder.config import Config
    from gemfinder.models.location import Location
    from gemfinder.services.app_state import AppState


class JSONOutput:
    """Helper for JSON output formatting."""

    def __init__(self, enabled: bool = False) -> None:
        self.enabled = enabled
        self._data: dict[str, Any] = {}

    def set(self, key: str, value: Any) -> None:
        """Set a value in the output."""
        self._data[key] = value

    def update(self, data: dict[str, Any]) -> None:
        """Update with multiple values."""
        self._data.update(data)

    def output(self) -> None:
        """Print JSON output if enabled."""
        if self.enabled:
            click.echo(json.dumps(self._data, indent=2, default=str))


# Custom context class to hold shared state
class Context:
    """CLI context holding shared configuration and state."""

    def __init__(self) -> None:
        self.config: Config | None = None
        self.verbose: int = 0
        self.quiet: bool = False
        self.json_output: bool = False
        self.output: JSONOutput = JSONOutput()

    def log(self, message: str, level: int = 0) -> None:
        """Log a message if verbosity allows.

        Args:
            message: Message to log.
            level: Required verbosity level (0=normal, 1=-v, 2=-vv).
        """
        if self.json_output:
            return
        if self.quiet and level == 0:
            return
        if level <= self.verbose or level == 0:
            click.echo(message)

    def warn(self, message: str) -> None:
        """Report a non-fatal problem on stderr."""
        if self.json_output:
            self.output.set("warning", message)
        else:
            click.echo(f"Warning: {message}", err=True)

    def error(self, message: str) -> None:
        """Log an error message."""
        if self.json_output:
            self.output.set("error", message)
            self.output.set("status", "error")
        else:
            click.echo(f"Error: {message}", err=True)

    def fail(self, message: str, code: int = 1) -> NoReturn:
        """Report an error and exit (1 operational failure, 2 usage error)."""
        self.error(message)
        if self.json_output:
            self.output.output()
        sys.exit(code)

    def succeed(self, data: dict[str, Any]) -> None:
        """Emit a JSON success document when --json is active."""
        if self.json_output:
            self.output.update({"status": "success", **data})
            self.output.output()


pass_context = click.make_pass_decorator(Context, ensure=True)


def _console_level(ctx: Context) -> int:
    if ctx.verbose >= 2:
        return logging.DEBUG
    if ctx.verbose == 1:
        return logging.INFO
    return logging.WARNING


def _open_store(ctx: Context) -> Any:
    """Create the configured data store and start logging."""
    from gemfinder.config import ensure_data_dir
    from gemfinder.lib.logging import setup_logging
    from gemfinder.services.store import open_store

    config = ctx.config
    if config is None:
        ctx.fail("Configuration not loaded")

    try:
        ensure_data_dir(config)
        setup_logging(config, console_level=_console_level(ctx), quiet=ctx.quiet or ctx.json_output)
        return open_store(config)
    except ValueError as e:
        ctx.fail(str(e), code=2)
    except OSError as e:
        ctx.fail(f"Cannot use data directory {config.data.directory}: {e}")


def _load_state(ctx: Context) -> AppState:
    """Open the store and load the session's locations and visits."""
    from gemfinder.config import ensure_data_dir
    from gemfinder.services.app_state import AppState

    store = _open_store(ctx)
    config = ctx.config
    assert config is not None

    state = AppState(
        store,
        ensure_data_dir(config),
        user_id=config.user.id or None,
        guest=config.user.guest,
    )
    state.load()
    for level, message in state.pop_notices():
        if level == "error":
            ctx.warn(message)
    return state


def _describe(state: AppState, location: Location) -> dict[str, Any]:
    data = location.to_dict()
    data["is_visited"] = state.is_visited(location.id)
    data["is_favorite"] = state.preferences.is_favorite(location.id)
    data["category_name"] = state.directory.category_name(location.category_id)
    return data


def _summary_line(state: AppState, location: Location) -> str:
    mark = "x" if state.is_visited(location.id) else " "
    flags = []
    if location.is_hidden_gem:
        flags.append("gem")
    if state.preferences.is_favorite(location.id):
        flags.append("favorite")
    if location.is_private:
        flags.append("private")
    suffix = f"  [{', '.join(flags)}]" if flags else ""
    return f"[{mark}] {location.id:>6}  {location.name} ({location.area_label}){suffix}"


@click.group()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help=f"Configuration file path (default: {DEFAULT_CONFIG_PATH})",
)
@click.option(
    "--data-dir",
    "-d",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Data directory path (default: ./data)",
)
@click.option(
    "--user",
    "-u",
    "user_id",
    default=None,
    help="User id to act as (overrides config and GEMFINDER_USER)",
)
@click.option(
    "--guest",
    is_flag=True,
    help="Guest mode: visits are kept in memory and never saved",
)
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase verbosity (can be repeated: -v, -vv)",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Suppress non-error output",
)
@click.option(
    "--json",
    "json_output",
    is_flag=True,
    help="Output in JSON format",
)
@click.version_option(version=__version__, prog_name="gemfinder")
@pass_context
def main(
    ctx: Context,
    config_path: Path | None,
    data_dir: Path | None,
    user_id: str | None,
    guest: bool,
    verbose: int,
    quiet: bool,
    json_output: bool,
) -> None:
    """Hidden gem explorer.

    Discover points of interest, check in when you visit them, keep
    favorites and folders, and track your exploring stats.
    """
    ctx.verbose = verbose
    ctx.quiet = quiet
    ctx.json_output = json_output
    ctx.output = JSONOutput(json_output)

    try:
        ctx.config = load_config(config_path)
    except ValueError as e:
        ctx.fail(f"Invalid configuration: {e}", code=2)

    if data_dir is not None:
        ctx.config.data.directory = data_dir
    if user_id:
        ctx.config.user.id = user_id
    if guest:
        ctx.config.user.guest = True


@main.command()
@pass_context
def init(ctx: Context) -> None:
    """Seed the data store with starter categories, locations and badges.

    Safe to run repeatedly; existing rows are left alone.
    """
    from gemfinder.config import config_summary
    from gemfinder.services.seed import seed_store
    from gemfinder.services.store import StoreError

    store = _open_store(ctx)
    try:
        inserted = seed_store(store)
    except StoreError as e:
        ctx.fail(f"Seeding failed: {e}")
    finally:
        store.close()

    assert ctx.config is not None
    if ctx.json_output:
        ctx.succeed({"inserted": inserted, "config": config_summary(ctx.config)})
        return

    for table, count in inserted.items():
        ctx.log(f"{table}: {count} added")
    ctx.log(f"Data directory: {ctx.config.data.directory}")


@main.group()
def locations() -> None:
    """Explore and manage locations."""
    pass


@locations.command(name="list")
@click.option(
    "--sort",
    "sort_by",
    type=click.Choice(["recent", "difficulty", "name"]),
    default="recent",
    help="Sort order (default: recent)",
)
@click.option("--visited", is_flag=True, help="Only visited locations")
@click.option("--favorites", is_flag=True, help="Only favorite locations")
@click.option("--gems", is_flag=True, help="Only hidden gems")
@click.option("--folder", help="Only locations in this folder (id or name)")
@pass_context
def list_locations(
    ctx: Context,
    sort_by: str,
    visited: bool,
    favorites: bool,
    gems: bool,
    folder: str | None,
) -> None:
    """List locations visible to you."""
    from gemfinder.models.location import sort_locations

    state = _load_state(ctx)
    items = sort_locations(state.visible_locations(), sort_by)

    if visited:
        items = [loc for loc in items if state.is_visited(loc.id)]
    if favorites:
        items = [loc for loc in items if state.preferences.is_favorite(loc.id)]
    if gems:
        items = [loc for loc in items if loc.is_hidden_gem]
    if folder is not None:
        if state.preferences.find_folder(folder) is None:
            ctx.fail(f"Folder not found: {folder}", code=2)
        in_folder = set(state.preferences.folder_locations(folder))
        items = [loc for loc in items if loc.id in in_folder]

    if ctx.json_output:
        ctx.succeed({"locations": [_describe(state, loc) for loc in items]})
        return

    if not items:
        ctx.log("No locations found")
        return
    for loc in items:
        ctx.log(_summary_line(state, loc))
    ctx.log(f"\n{len(items)} locations, {len(state.visited_ids)} visited")


@locations.command(name="show")
@click.argument("location_id")
@pass_context
def show_location(ctx: Context, location_id: str) -> None:
    """Show details of a location."""
    state = _load_state(ctx)
    location = state.directory.get(location_id)
    if location is None or location not in state.visible_locations():
        ctx.fail(f"Location not found: {location_id}")

    if ctx.json_output:
        ctx.succeed({"location": _describe(state, location)})
        return

    ctx.log(location.name)
    ctx.log(f"  Area:        {location.area_label}")
    ctx.log(f"  Category:    {state.directory.category_name(location.category_id) or '-'}")
    ctx.log(f"  Coordinates: {location.latitude:.5f}, {location.longitude:.5f}")
    if location.address:
        ctx.log(f"  Address:     {location.address}")
    if location.difficulty_label:
        ctx.log(f"  Difficulty:  {location.difficulty_label}")
    ctx.log(f"  Hidden gem:  {'yes' if location.is_hidden_gem else 'no'}")
    ctx.log(f"  Visited:     {'yes' if state.is_visited(location.id) else 'no'}")
    if location.description:
        ctx.log(f"\n{location.description}")


@locations.command(name="add")
@click.argument("name")
@click.option("--lat", "latitude", required=True, help="Latitude in degrees (-90 to 90)")
@click.option("--lon", "longitude", required=True, help="Longitude in degrees (-180 to 180)")
@click.option("--description", help="Description of the place")
@click.option("--difficulty", type=int, default=1, help="Difficulty to find, 1-5 (default: 1)")
@click.option("--public", "is_public", is_flag=True, help="Share with everyone (default: private)")
@click.option("--area", help="Neighborhood or area name")
@click.option("--category", "category_id", help="Category id")
@click.option("--address", help="Street address")
@pass_context
def add_location(
    ctx: Context,
    name: str,
    latitude: str,
    longitude: str,
    description: str | None,
    difficulty: int,
    is_public: bool,
    area: str | None,
    category_id: str | None,
    address: str | None,
) -> None:
    """Add a hidden gem of your own."""
    from gemfinder.services.directory import OwnershipError, ValidationError
    from gemfinder.services.store import StoreError

    state = _load_state(ctx)
    fields = {
        "name": name,
        "latitude": latitude,
        "longitude": longitude,
        "description": description,
        "difficulty": difficulty,
        "is_private": not is_public,
        "area": area,
        "category_id": category_id,
        "address": address,
    }
    try:
        location = state.add_location(**fields)
    except ValidationError as e:
        state.save_draft(fields)
        ctx.warn("Your input was kept as a draft (see: gemfinder locations draft)")
        ctx.fail(str(e), code=2)
    except OwnershipError as e:
        ctx.fail(str(e))
    except StoreError as e:
        ctx.fail(f"Failed to add location: {e}")

    if ctx.json_output:
        ctx.succeed({"location": _describe(state, location)})
        return
    ctx.log(f"Added {location.name} ({location.id})")
    if state.guest:
        ctx.log("Guest mode: the location is not saved", level=0)


@locations.command(name="draft")
@click.option("--clear", is_flag=True, help="Discard the saved draft")
@pass_context
def show_draft(ctx: Context, clear: bool) -> None:
    """Show the unfinished location kept from a failed add."""
    state = _load_state(ctx)
    draft = state.preferences.draft
    if clear:
        state.update_preferences(lambda prefs: prefs.clear_draft())

    if ctx.json_output:
        ctx.succeed({"draft": draft, "cleared": clear})
        return

    if not draft:
        ctx.log("No draft saved")
        return
    for key, value in draft.items():
        ctx.log(f"  {key}: {value}")
    if clear:
        ctx.log("Draft discarded")


@locations.command(name="delete")
@click.argument("location_id")
@pass_context
def delete_location(ctx: Context, location_id: str) -> None:
    """Delete a location you added."""
    from gemfinder.services.directory import LocationNotFoundError, OwnershipError
    from gemfinder.services.store import StoreError

    state = _load_state(ctx)
    try:
        location = state.delete_location(location_id)
    except LocationNotFoundError as e:
        ctx.fail(str(e))
    except OwnershipError as e:
        ctx.fail(str(e))
    except StoreError as e:
        ctx.fail(f"Failed to delete location: {e}")

    ctx.succeed({"deleted": location.id})
    ctx.log(f"Deleted {location.name}")


@main.command()
@click.argument("location_id")
@click.option("--rating", type=click.IntRange(1, 5), help="Rate the visit, 1-5")
@click.option("--notes", help="Notes about the visit")
@pass_context
def checkin(ctx: Context, location_id: str, rating: int | None, notes: str | None) -> None:
    """Mark a location as visited."""
    from gemfinder.services.directory import LocationNotFoundError
    from gemfinder.services.store import StoreError

    state = _load_state(ctx)
    location = state.directory.get(location_id)
    if location is None or location not in state.visible_locations():
        ctx.fail(f"Location not found: {location_id}")

    try:
        event = state.mark_visited(location.id, rating=rating, notes=notes)
    except LocationNotFoundError as e:
        ctx.fail(str(e))
    except StoreError as e:
        ctx.fail(f"Failed to mark location as visited: {e}")

    badges = [b.name for b in state.new_badges]
    if ctx.json_output:
        ctx.succeed({
            "location_id": location.id,
            "already_visited": event is None,
            "badges_earned": badges,
        })
        return

    if event is None:
        ctx.log(f"{location.name} is already marked as visited")
        return
    ctx.log(f"Checked in at {location.name}")
    if location.is_hidden_gem:
        ctx.log("You found a hidden gem!")
    for name in badges:
        ctx.log(f"Badge earned: {name}")


@main.command()
@click.argument("location_id")
@pass_context
def uncheck(ctx: Context, location_id: str) -> None:
    """Remove the visit from a location."""
    from gemfinder.services.store import StoreError

    state = _load_state(ctx)
    try:
        removed = state.unmark_visited(location_id)
    except StoreError as e:
        ctx.fail(f"Failed to update visit status: {e}")

    if ctx.json_output:
        ctx.succeed({"location_id": location_id, "removed": removed})
        return
    ctx.log("Visit removed" if removed else f"Location {location_id} was not visited")


@main.command()
@click.argument("location_id")
@pass_context
def favorite(ctx: Context, location_id: str) -> None:
    """Add a location to favorites, or remove it if already there."""
    from gemfinder.services.directory import LocationNotFoundError

    state = _load_state(ctx)
    try:
        now_favorite = state.toggle_favorite(location_id)
    except LocationNotFoundError as e:
        ctx.fail(str(e))

    if ctx.json_output:
        ctx.succeed({"location_id": location_id, "is_favorite": now_favorite})
        return
    ctx.log("Added to favorites" if now_favorite else "Removed from favorites")


@main.group()
def folders() -> None:
    """Organize locations into folders (stored locally)."""
    pass


@folders.command(name="list")
@pass_context
def list_folders(ctx: Context) -> None:
    """List folders and their locations."""
    state = _load_state(ctx)
    prefs = state.preferences

    if ctx.json_output:
        ctx.succeed({"folders": [f.to_dict() for f in prefs.folders]})
        return

    if not prefs.folders:
        ctx.log("No folders yet")
        return
    for folder in prefs.folders:
        ctx.log(f"{folder.name} ({folder.id}): {len(folder.location_ids)} locations")
        for location_id in folder.location_ids:
            location = state.directory.get(location_id)
            ctx.log(f"  - {location.name if location else location_id}")


@folders.command(name="create")
@click.argument("name")
@pass_context
def create_folder(ctx: Context, name: str) -> None:
    """Create a folder."""
    state = _load_state(ctx)
    try:
        folder = state.update_preferences(lambda prefs: prefs.create_folder(name))
    except ValueError as e:
        ctx.fail(str(e), code=2)

    ctx.succeed({"folder": folder.to_dict()})
    ctx.log(f"Created folder {folder.name} ({folder.id})")


@folders.command(name="delete")
@click.argument("folder")
@pass_context
def delete_folder(ctx: Context, folder: str) -> None:
    """Delete a folder (by id or name)."""
    state = _load_state(ctx)
    if not state.update_preferences(lambda prefs: prefs.delete_folder(folder)):
        ctx.fail(f"Folder not found: {folder}", code=2)

    ctx.succeed({"deleted": folder})
    ctx.log(f"Deleted folder {folder}")


@folders.command(name="add")
@click.argument("folder")
@click.argument("location_id")
@pass_context
def add_to_folder(ctx: Context, folder: str, location_id: str) -> None:
    """Add a location to a folder."""
    state = _load_state(ctx)
    target = state.preferences.find_folder(folder)
    if target is None:
        ctx.fail(f"Folder not found: {folder}", code=2)
    if state.directory.get(location_id) is None:
        ctx.fail(f"Location not found: {location_id}")

    if location_id not in target.location_ids:
        state.update_preferences(lambda prefs: prefs.toggle_in_folder(location_id, target.id))

    ctx.succeed({"folder": target.to_dict()})
    ctx.log(f"{location_id} is in {target.name}")


@folders.command(name="remove")
@click.argument("folder")
@click.argument("location_id")
@pass_context
def remove_from_folder(ctx: Context, folder: str, location_id: str) -> None:
    """Remove a location from a folder."""
    state = _load_state(ctx)
    try:
        state.update_preferences(lambda prefs: prefs.remove_from_folder(location_id, folder))
    except KeyError:
        ctx.fail(f"Folder not found: {folder}", code=2)

    ctx.succeed({"folder": folder, "removed": location_id})
    ctx.log(f"Removed {location_id} from {folder}")


@main.group()
def view() -> None:
    """View stats and maps."""
    pass


@view.command(name="stats")
@pass_context
def stats(ctx: Context) -> None:
    """Display your exploring statistics."""
    from gemfinder.views.stats import format_stats

    state = _load_state(ctx)
    result, error = state.stats()
    if error:
        ctx.warn(error)

    if ctx.json_output:
        ctx.succeed(result.to_dict())
        return
    ctx.log(format_stats(result))


@view.command(name="map")
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    help="Output HTML file (default: stdout or ./map.html)",
)
@click.option(
    "--serve",
    is_flag=True,
    help="Start local HTTP server to view map",
)
@click.option(
    "--port",
    default=8080,
    help="Server port (default: 8080)",
)
@pass_context
def map_cmd(ctx: Context, output: Path | None, serve: bool, port: int) -> None:
    """Generate interactive map of locations."""
    from gemfinder.views.map import build_features, generate_map, serve_map

    state = _load_state(ctx)
    assert ctx.config is not None

    try:
        html = generate_map(build_features(state), ctx.config.map)

        if serve:
            output_path = output or Path("./map.html")
            output_path.write_text(html)
            ctx.log(f"Map saved to {output_path}")
            ctx.log(f"Starting server at http://127.0.0.1:{port}")
            serve_map(output_path, port=port)
        elif output:
            output.write_text(html)
            ctx.log(f"Map saved to {output}")
        else:
            click.echo(html)

    except OSError as e:
        ctx.fail(f"Map generation failed: {e}")


@main.command()
@click.option(
    "--port",
    default=8080,
    help="Server port (default: 8080)",
)
@click.option(
    "--host",
    default="127.0.0.1",
    help="Server host (default: 127.0.0.1)",
)
@click.option(
    "--no-open",
    is_flag=True,
    help="Don't automatically open browser",
)
@pass_context
def browse(ctx: Context, port: int, host: str, no_open: bool) -> None:
    """Start local web server to explore locations."""
    from gemfinder.views.browser import start_browser

    state = _load_state(ctx)
    assert ctx.config is not None

    try:
        ctx.log(f"Starting browser at http://{host}:{port}")
        start_browser(
            state,
            host=host,
            port=port,
            open_browser=not no_open,
            map_config=ctx.config.map,
        )
    except OSError as e:
        ctx.fail(f"Browser failed: {e}")
    finally:
        state.store.close()


if __name__ == "__main__":
    main()
