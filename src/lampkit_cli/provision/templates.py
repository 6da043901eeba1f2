"""Pure renderers for generated files.

Nothing here touches the filesystem or runs commands; installers write the
returned text through the idempotent file helpers.
"""

from __future__ import annotations

from typing import Any

import yaml

from .models import Cache, Configuration, DbEngine, PlatformFacts, Queue, WebServer

# php.ini production block
OPCACHE_MARKER = "; OPcache settings for production"
OPCACHE_BLOCK = f"""{OPCACHE_MARKER}
opcache.enable=1
opcache.memory_consumption=128
opcache.interned_strings_buffer=16
opcache.max_accelerated_files=10000
opcache.revalidate_freq=60
opcache.fast_shutdown=1
"""

DISABLE_FUNCTIONS = (
    "exec,passthru,shell_exec,system,proc_open,popen,curl_exec,curl_multi_exec,"
    "parse_ini_file,show_source,eval,dl,pcntl_exec"
)

NGINX_GZIP_MARKER = "gzip on;"
NGINX_GZIP_BLOCK = """    gzip on;
    gzip_vary on;
    gzip_proxied any;
    gzip_comp_level 6;
    gzip_min_length 256;
    gzip_types text/plain application/xml application/javascript text/css;
"""

APACHE_PROTOCOLS = "Protocols h2 h2c http/1.1"

SSH_CIPHERS = "aes256-ctr,aes192-ctr,aes128-ctr"
SSH_MACS = "hmac-sha2-512,hmac-sha2-256"
SSH_KEX = "curve25519-sha256@libssh.org,diffie-hellman-group-exchange-sha256"

KAFKA_HOME = "/opt/kafka"
KAFKA_SCALA = "2.13"
KAFKA_MIRROR = "https://archive.apache.org/dist/kafka"

ZOOKEEPER_UNIT = f"""[Unit]
Description=Apache Zookeeper server
Documentation=http://zookeeper.apache.org
Requires=network.target remote-fs.target
After=network.target remote-fs.target

[Service]
Type=simple
User=kafka
Group=kafka
ExecStart={KAFKA_HOME}/bin/zookeeper-server-start.sh {KAFKA_HOME}/config/zookeeper.properties
ExecStop={KAFKA_HOME}/bin/zookeeper-server-stop.sh
Restart=on-abnormal

[Install]
WantedBy=multi-user.target
"""

KAFKA_UNIT = f"""[Unit]
Description=Apache Kafka Server
Documentation=http://kafka.apache.org/documentation.html
Requires=zookeeper.service
After=zookeeper.service

[Service]
Type=simple
User=kafka
Group=kafka
ExecStart={KAFKA_HOME}/bin/kafka-server-start.sh {KAFKA_HOME}/config/server.properties
ExecStop={KAFKA_HOME}/bin/kafka-server-stop.sh
Restart=on-abnormal

[Install]
WantedBy=multi-user.target
"""

MONGODB_VERSION = "6.0"
MONGODB_KEY_URL = f"https://www.mongodb.org/static/pgp/server-{MONGODB_VERSION}.asc"


def kafka_archive_url(version: str, scala: str = KAFKA_SCALA) -> str:
    return f"{KAFKA_MIRROR}/{version}/kafka_{scala}-{version}.tgz"


def php_fpm_socket(facts: PlatformFacts, php_version: str) -> str:
    """FastCGI address of the PHP-FPM pool."""
    if facts.is_debian:
        return f"unix:/run/php/php{php_version}-fpm.sock"
    return "unix:/run/php-fpm/www.sock"


def render_nginx_server_block(domain: str, root: str, fastcgi_pass: str, debian: bool) -> str:
    """Nginx server block for one domain."""
    if debian:
        php_include = "        include snippets/fastcgi-php.conf;\n"
    else:
        php_include = "        fastcgi_index index.php;\n"
    return (
        "server {\n"
        "    listen 80;\n"
        f"    server_name {domain};\n"
        f"    root {root};\n"
        "    index index.php index.html index.htm;\n"
        "    location / {\n"
        "        try_files $uri $uri/ /index.php?$query_string;\n"
        "    }\n"
        "    location ~ \\.php$ {\n"
        f"{php_include}"
        f"        fastcgi_pass {fastcgi_pass};\n"
        "        fastcgi_param SCRIPT_FILENAME $document_root$fastcgi_script_name;\n"
        "        include fastcgi_params;\n"
        "    }\n"
        "    location ~ /\\.ht {\n"
        "        deny all;\n"
        "    }\n"
        "}\n"
    )


def render_apache_vhost(domain: str, root: str, log_dir: str) -> str:
    """Apache VirtualHost for one domain."""
    return f"""<VirtualHost *:80>
    ServerName {domain}
    DocumentRoot {root}
    <Directory {root}>
        AllowOverride All
        Require all granted
    </Directory>
    ErrorLog {log_dir}/{domain}-error.log
    CustomLog {log_dir}/{domain}-access.log combined
</VirtualHost>
"""


def render_caddyfile(sites: list[tuple[str, str]], fastcgi_pass: str) -> str:
    """Caddyfile with one site block per (domain, root)."""
    blocks = []
    for domain, root in sites:
        blocks.append(
            f"{domain} {{\n"
            f"    root * {root}\n"
            f"    php_fastcgi {fastcgi_pass}\n"
            "    file_server\n"
            "    encode gzip\n"
            "}\n"
        )
    return "\n".join(blocks)


def render_lighttpd_vhost(domain: str, root: str) -> str:
    """Lighttpd host conditional for one domain."""
    pattern = domain.replace(".", "\\.")
    return f"""$HTTP["host"] =~ "^{pattern}$" {{
    server.document-root = "{root}"
}}
"""


def sql_quote(value: str, backslash_escapes: bool = True) -> str:
    """Quote a value as an SQL string literal.

    MySQL treats backslash as an escape character; PostgreSQL (with
    standard_conforming_strings) does not.
    """
    if backslash_escapes:
        value = value.replace("\\", "\\\\")
    return "'" + value.replace("'", "''") + "'"


def render_mysql_secure_sql(password: str) -> str:
    """Initial credential-securing transaction for the MySQL family.

    Sets the root password, drops anonymous accounts and the test schema.
    """
    return (
        f"ALTER USER 'root'@'localhost' IDENTIFIED BY {sql_quote(password)};\n"
        "DELETE FROM mysql.user WHERE User='';\n"
        "DROP DATABASE IF EXISTS test;\n"
        "DELETE FROM mysql.db WHERE Db='test' OR Db='test\\\\_%';\n"
        "FLUSH PRIVILEGES;\n"
    )


def render_postgres_password_sql(password: str) -> str:
    return f"ALTER USER postgres PASSWORD {sql_quote(password, backslash_escapes=False)};\n"


def render_phpmyadmin_preseed(password: str, web_server: WebServer) -> str:
    """debconf selections for a non-interactive phpMyAdmin install."""
    reconfigure = "apache2" if web_server == WebServer.APACHE else ""
    return (
        "phpmyadmin phpmyadmin/dbconfig-install boolean true\n"
        f"phpmyadmin phpmyadmin/app-password-confirm password {password}\n"
        f"phpmyadmin phpmyadmin/mysql/admin-pass password {password}\n"
        f"phpmyadmin phpmyadmin/mysql/app-pass password {password}\n"
        f"phpmyadmin phpmyadmin/reconfigure-webserver multiselect {reconfigure}\n"
    )


def render_mongodb_apt_list(codename: str) -> str:
    return (
        "deb [arch=amd64,arm64 signed-by=/usr/share/keyrings/mongodb-server.gpg] "
        f"https://repo.mongodb.org/apt/ubuntu {codename}/mongodb-org/{MONGODB_VERSION} multiverse\n"
    )


def render_mongodb_yum_repo() -> str:
    return f"""[mongodb-org-{MONGODB_VERSION}]
name=MongoDB Repository
baseurl=https://repo.mongodb.org/yum/redhat/$releasever/mongodb-org/{MONGODB_VERSION}/x86_64/
gpgcheck=1
enabled=1
gpgkey={MONGODB_KEY_URL}
"""


# Container images per component
_WEB_IMAGES = {
    WebServer.NGINX: "nginx:latest",
    WebServer.APACHE: "httpd:latest",
    WebServer.CADDY: "caddy:latest",
    WebServer.LIGHTTPD: "sebp/lighttpd:latest",
}

_DB_SERVICES: dict[DbEngine, dict[str, Any] | None] = {
    DbEngine.MYSQL: {"image": "mysql:8.0", "environment": {"MYSQL_ROOT_PASSWORD": "${DB_PASSWORD}"}},
    DbEngine.MARIADB: {"image": "mariadb:lts", "environment": {"MARIADB_ROOT_PASSWORD": "${DB_PASSWORD}"}},
    DbEngine.PERCONA: {"image": "percona:8.0", "environment": {"MYSQL_ROOT_PASSWORD": "${DB_PASSWORD}"}},
    DbEngine.POSTGRESQL: {"image": "postgres:latest", "environment": {"POSTGRES_PASSWORD": "${DB_PASSWORD}"}},
    DbEngine.MONGODB: {
        "image": "mongo:latest",
        "environment": {
            "MONGO_INITDB_ROOT_USERNAME": "root",
            "MONGO_INITDB_ROOT_PASSWORD": "${DB_PASSWORD}",
        },
    },
    DbEngine.SQLITE: None,  # File-based, no container
    DbEngine.ORACLE_XE: None,
}

_CACHE_IMAGES = {
    Cache.REDIS: "redis:latest",
    Cache.MEMCACHED: "memcached:latest",
    Cache.VARNISH: "varnish:latest",
    Cache.NONE: None,
}

_QUEUE_IMAGES = {
    Queue.RABBITMQ: "rabbitmq:management",
    Queue.KAFKA: "confluentinc/cp-kafka:latest",
    Queue.NONE: None,
}


def build_compose_dict(config: Configuration) -> dict[str, Any]:
    """docker-compose structure with one service per selected component.

    The database password is referenced as ${DB_PASSWORD} and supplied by
    the sibling .env file.
    """
    services: dict[str, Any] = {
        "web": {
            "image": _WEB_IMAGES[config.web_server],
            "ports": ["80:80", "443:443"],
            "volumes": [f"{config.doc_root}:/var/www/html"],
            "restart": "unless-stopped",
        }
    }
    db = _DB_SERVICES[config.db_engine]
    if db is not None:
        services["db"] = {**db, "volumes": ["db-data:/var/lib/data"], "restart": "unless-stopped"}
        services["web"]["depends_on"] = ["db"]
    cache_image = _CACHE_IMAGES[config.cache]
    if cache_image:
        services["cache"] = {"image": cache_image, "restart": "unless-stopped"}
    queue_image = _QUEUE_IMAGES[config.queue]
    if queue_image:
        services["mq"] = {"image": queue_image, "restart": "unless-stopped"}

    compose: dict[str, Any] = {"services": services}
    if db is not None:
        compose["volumes"] = {"db-data": {}}
    return compose


def render_compose_env(password: str) -> str:
    return f"DB_PASSWORD={password}\n"


def build_playbook(config: Configuration) -> list[dict[str, Any]]:
    """Ansible playbook skeleton: update, upgrade, install essentials."""
    web_package = {
        WebServer.APACHE: "{{ 'apache2' if ansible_os_family == 'Debian' else 'httpd' }}",
        WebServer.NGINX: "nginx",
        WebServer.CADDY: "caddy",
        WebServer.LIGHTTPD: "lighttpd",
    }[config.web_server]
    db_package = {
        DbEngine.MARIADB: "mariadb-server",
        DbEngine.MYSQL: "{{ 'mysql-server' if ansible_os_family == 'Debian' else 'mariadb-server' }}",
        DbEngine.PERCONA: "percona-server-server",
        DbEngine.POSTGRESQL: "postgresql",
        DbEngine.MONGODB: "mongodb-org",
        DbEngine.SQLITE: "sqlite3",
        DbEngine.ORACLE_XE: None,
    }[config.db_engine]
    essentials = ["{{ 'php' if ansible_os_family == 'Debian' else 'php-cli' }}", web_package]
    if db_package:
        essentials.append(db_package)

    return [
        {
            "hosts": "all",
            "become": True,
            "tasks": [
                {
                    "name": "Update package cache (Debian/Ubuntu)",
                    "apt": {"update_cache": True},
                    "when": 'ansible_os_family == "Debian"',
                    "changed_when": False,
                },
                {
                    "name": "Upgrade all packages",
                    "package": {"name": "*", "state": "latest"},
                },
                {
                    "name": "Install essential packages",
                    "package": {"name": "{{ item }}", "state": "present"},
                    "loop": essentials,
                },
            ],
        }
    ]


def dump_yaml(data: Any) -> str:
    """Serialize with stable key order."""
    return yaml.dump(data, default_flow_style=False, sort_keys=False)
