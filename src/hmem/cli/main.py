from __future__ import annotations
import argparse, logging, os, sys
from hmem.cli.doctor import run_doctor

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="hmem", description="Hybrid conversational memory store")
    p.add_argument("--log-level", default=os.environ.get("HMEM_LOG_LEVEL", "INFO"))
    sub = p.add_subparsers(dest="cmd", required=True)

    s = sub.add_parser("serve", help="Run the HTTP API (settings come from HMEM_* environment variables)")
    s.add_argument("--host", default=None)
    s.add_argument("--port", type=int, default=None)

    d = sub.add_parser("doctor", help="Run store self-checks against a scratch directory and emit a signed report")
    d.add_argument("--data-dir", default=None, help="Scratch directory (default: a fresh temporary directory)")
    d.add_argument("--dimension", type=int, default=256)
    d.add_argument("--entries", type=int, default=120)
    d.add_argument("--report-out", default="./hmem_doctor_report.json")
    d.add_argument("--strict", action="store_true")
    return p

def _serve(host: str | None, port: int | None) -> int:
    import uvicorn
    from hmem.config import ServerSettings

    server = ServerSettings.from_env()
    uvicorn.run(
        "hmem.api.app:create_app",
        factory=True,
        host=host or server.host,
        port=int(port or server.port),
    )
    return 0

def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.cmd == "serve":
        return _serve(args.host, args.port)
    if args.cmd == "doctor":
        return run_doctor(
            data_dir=args.data_dir,
            dimension=args.dimension,
            entries=args.entries,
            report_out=args.report_out,
            strict=args.strict,
        )
    return 2

if __name__ == "__main__":
    raise SystemExit(main())
