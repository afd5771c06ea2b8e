import os
import json
from typing import Any, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# CLI çıktı modunu kontrol eden ortam değişkeni
# İzin verilen değerler: 'plain' (varsayılan), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False))


def print_book_list(books: List[Any]) -> None:
    """Kitap listesini mevcut çıktı moduna göre yazdır.
    - plain: '#id Title by Author [TYPE]' satırları, veya 'No books in catalog.'
    - json: to_dict() nesnelerinden oluşan JSON dizisi
    - rich: Rich tablosu
    """
    if not books:
        print("No books in catalog.")
        return

    mode = get_output_mode()
    if mode == "json":
        _print_json([b.to_dict() for b in books])
    elif mode == "rich":
        table = Table(title="📚 Books", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Category", style="white")
        table.add_column("Type", style="green")
        for b in books:
            table.add_row(str(b.id), b.title, b.author, b.category, f"{b.book_type.value} ({b.book_type.label})")
        _console.print(table)
    else:
        for b in books:
            print(f"#{b.id} {b.title} by {b.author} [{b.book_type.value}]")


def print_library_list(libraries: List[Any]) -> None:
    if not libraries:
        print("No libraries registered.")
        return

    mode = get_output_mode()
    if mode == "json":
        _print_json([lib.to_dict() for lib in libraries])
    elif mode == "rich":
        table = Table(title="🏛️ Libraries", header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Name", style="white")
        table.add_column("Address", style="white")
        table.add_column("Phone", style="white")
        for lib in libraries:
            table.add_row(str(lib.id), lib.name, lib.address, lib.phone or "-")
        _console.print(table)
    else:
        for lib in libraries:
            print(f"#{lib.id} {lib.name} - {lib.address}")


def print_loan_list(records: List[Any]) -> None:
    if not records:
        print("No loans found.")
        return

    mode = get_output_mode()
    if mode == "json":
        _print_json([r.to_dict() for r in records])
    elif mode == "rich":
        table = Table(title="📖 Loans", header_style="bold cyan")
        table.add_column("Record", style="magenta", no_wrap=True)
        table.add_column("Copy", style="white")
        table.add_column("Borrowed", style="white")
        table.add_column("Due", style="yellow")
        table.add_column("Status", style="green")
        for r in records:
            table.add_row(
                str(r.id),
                str(r.book_copy_id),
                r.borrowed_at.strftime("%Y-%m-%d"),
                r.due_at.strftime("%Y-%m-%d"),
                r.status.value,
            )
        _console.print(table)
    else:
        for r in records:
            print(f"#{r.id} copy {r.book_copy_id} due {r.due_at.strftime('%Y-%m-%d')} [{r.status.value}]")


def print_stats_result(stats: Dict[str, Any]) -> None:
    """İstatistikleri mevcut çıktı moduna göre yazdır."""
    if not stats:
        print("No statistics available.")
        return

    mode = get_output_mode()
    labels = {key: key.replace("_", " ").title() for key in stats}
    if mode == "json":
        _print_json(stats)
    elif mode == "rich":
        content = "\n".join(f"[bold]{labels[key]}:[/] {value}" for key, value in stats.items())
        _console.print(Panel.fit(content, title="📊 Stats", border_style="blue"))
    else:
        for key, value in stats.items():
            print(f"{labels[key]}: {value}")
