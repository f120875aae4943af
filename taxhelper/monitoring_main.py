from __future__ import annotations

import uvicorn

from taxhelper.config import Settings, load_dotenv
from taxhelper.monitoring_api import create_monitoring_app

load_dotenv()
_settings = Settings.from_env()

app = create_monitoring_app(
    metrics_path=_settings.metrics_path,
    review_queue_dir=_settings.review_queue_dir,
)


def main() -> None:
    uvicorn.run("taxhelper.monitoring_main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
