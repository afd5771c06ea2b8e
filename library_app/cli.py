import logging
import subprocess
import sys
from typing import Optional

import typer
from rich.console import Console

from library_app import database
from library_app.config import settings
from library_app.exceptions import LibraryError
from library_app.models import BookType
from library_app.services import Services, build_services
from library_app.ui_helpers import (
    print_book_list,
    print_library_list,
    print_loan_list,
    print_stats_result,
    set_output_mode,
)

APP_NAME = "Library CLI"

console = Console()
logger = logging.getLogger(__name__)

# --- Typer CLI Uygulaması ---
app = typer.Typer(help="Library management CLI")


def _services() -> Services:
    # database.DATABASE_FILE çağrı anında okunur; testler bu değeri geçersiz kılar
    database.initialize_database()
    return build_services()


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Çıktı formatı: plain | json | rich (varsayılan: plain)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Ayrıntılı günlük çıktısı"),
):
    """CLI için genel seçenekler (çıktı modu, günlük seviyesi)."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    if output:
        set_output_mode(output)


@app.command("init-db")
def cli_init_db():
    """Veritabanı tablolarını ve varsayılan rolleri oluştur."""
    database.initialize_database()
    print(f"Database initialized: {database.DATABASE_FILE}")


@app.command("serve")
def cli_serve(
    host: str = typer.Option(settings.api_host, "--host"),
    port: int = typer.Option(settings.api_port, "--port"),
    reload: bool = typer.Option(False, "--reload", help="Kod değişikliklerinde yeniden yükle"),
):
    """Uvicorn kullanarak HTTP API'yi başlat."""
    print(f"Starting API server on http://{host}:{port}/")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "library_app.api:app",
        "--host", host,
        "--port", str(port),
    ]
    if reload:
        args.append("--reload")
    try:
        subprocess.run(args)
    except FileNotFoundError:
        console.print("[bold red]Error:[/] uvicorn could not be started. Is it installed?")
        raise typer.Exit(code=1)


@app.command("check-notifications")
def cli_check_notifications():
    """Vade hatırlatma kontrolünü bir kez çalıştır (zamanlayıcının yaptığı işin aynısı)."""
    sent = _services().scheduler.run_once()
    print(f"Sent {len(sent)} reminder(s).")


@app.command("seed-demo")
def cli_seed_demo():
    """Deneme için örnek kütüphaneler, kitaplar ve kullanıcılar ekle."""
    services = _services()
    if services.libraries.exists_by_name("Central Library"):
        print("Demo data already present.")
        return

    central = services.libraries.create_library("Central Library", "1 Main Street", "555-0100")
    east = services.libraries.create_library("East Branch", "42 East Avenue", "555-0101")
    services.books.create_book_with_copies(
        "Dream of the Red Chamber", "Cao Xueqin", "Classics", {central.id: 3, east.id: 1},
        published_year=1791, book_type=BookType.TRADITIONAL,
    )
    services.books.create_book_with_copies(
        "Clean Code", "Robert C. Martin", "Programming", {central.id: 2},
        published_year=2008, book_type=BookType.MODERN,
    )
    services.users.register("Demo Member", "member@example.com", "member123")
    services.users.create_admin("Demo Admin", "admin@example.com", "admin123")
    print("Demo data created: 2 libraries, 2 books, 2 users.")


@app.command("books")
def cli_books(
    title: Optional[str] = typer.Option(None, "--title"),
    author: Optional[str] = typer.Option(None, "--author"),
    category: Optional[str] = typer.Option(None, "--category"),
):
    """Kataloğu listele veya filtrele."""
    print_book_list(_services().books.search_books(title, author, category))


@app.command("libraries")
def cli_libraries():
    """Kayıtlı kütüphaneleri listele."""
    print_library_list(_services().libraries.find_all())


@app.command("loans")
def cli_loans(
    user_id: int,
    history: bool = typer.Option(False, "--all", help="İade edilenler dahil tüm kayıtlar"),
):
    """Bir kullanıcının aktif ödünç kayıtlarını göster."""
    borrows = _services().borrows
    try:
        records = borrows.get_borrow_history(user_id) if history else borrows.get_active_borrows(user_id)
    except LibraryError as e:
        print(f"Error: {e.message}")
        raise typer.Exit(code=1)
    print_loan_list(records)


@app.command("stats")
def cli_stats():
    """Kütüphane istatistiklerini göster."""
    print_stats_result(_services().libraries.get_statistics())


if __name__ == "__main__":
    app()
