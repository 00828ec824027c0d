import logging
import os
import sys
from studio_scheduler import create_app

def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )
    app = create_app(config_name=os.environ.get('FLASK_CONFIG', 'production'))

    try:
        app.run(
            host=os.environ.get('HOST', '127.0.0.1'),
            port=int(os.environ.get('PORT', 5000)),
            debug=False,
            use_reloader=False
        )
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Application stopped.")
        sys.exit(0)

if __name__ == '__main__':
    main()
