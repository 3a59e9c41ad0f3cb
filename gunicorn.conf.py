# use in gunicorn as: env/bin/gunicorn photoindex.api:app -c gunicorn.conf.py
# Every worker opens its own index database engine and S3 client in the app lifespan

# Workers
workers = 4
worker_class = 'uvicorn.workers.UvicornWorker'

# Socket
bind = 'localhost:5001'

# Logging
# loglevel = 'debug'
# accesslog = '/tmp/photoindex_access_log'
# errorlog =  '/tmp/photoindex_error_log'
