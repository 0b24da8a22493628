import os
import configparser
from pathlib import Path

class Config:
    """Configuration manager for the order lifecycle engine."""

    _instance = None

    def __new__(cls):
        """Singleton pattern implementation."""
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize the configuration if not already initialized."""
        if self._initialized:
            return

        config_file = os.environ.get('PO_LIFECYCLE_CONFIG')
        if config_file:
            self._config_path = Path(config_file)
            self._config_dir = self._config_path.parent
        else:
            self._config_dir = Path('config')
            self._config_path = self._config_dir / 'settings.ini'
        self._config = configparser.ConfigParser(interpolation=None)

        # Create config directory if it doesn't exist
        if not self._config_dir.exists():
            self._config_dir.mkdir(parents=True)

        # Load config or create default
        if self._config_path.exists():
            self._config.read(self._config_path)
        else:
            self._create_default_config()

        self._initialized = True

    def _create_default_config(self):
        """Create default configuration file."""
        self._config['DATABASE'] = {
            'engine': 'postgresql',
            'host': 'localhost',
            'port': '5432',
            'database': 'po_lifecycle',
            'username': 'postgres',
            'password': 'postgres',
            'echo': 'False'
        }

        self._config['LOGGING'] = {
            'level': 'INFO',
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            'directory': 'logs',
            'max_size_mb': '10',
            'backup_count': '5',
            'console_output': 'True'
        }

        self._config['BATCH_PROCESS'] = {
            'chunk_size': '500',
            'stop_on_error': 'False'
        }

        self._config['BUSINESS_RULES'] = {
            'inline_inspection_window_days': '14',
            'final_inspection_window_days': '7',
            'qa_test_window_days': '45',
            'initial_inspection_lead_days': '45',
            'inline_inspection_lead_days': '30',
            'final_inspection_lead_days': '14',
            'shipment_booking_lead_days': '21',
            'otd_min_year': '2024',
            # trailing comma keeps the space of the last prefix when the file is read back
            'excluded_program_prefixes': 'SMP ,8X8 ,',
            'franchise_po_prefix': '089',
            'significant_variance_pct': '10',
            'projection_threshold_days': '90',
            'known_mto_collections': (
                'ambroise,forte,hoxton,pm symmetric,vera,aviator,lowe,emile,'
                'laura/tiff,laura,tiff,blume,soma,edendale'
            )
        }

        self._save_config()

    def _save_config(self):
        """Save configuration to file."""
        with open(self._config_path, 'w') as configfile:
            self._config.write(configfile)

    def get(self, section, key, default=None):
        """Get configuration value."""
        try:
            return self._config.get(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError):
            return default

    def get_int(self, section, key, default=None):
        """Get configuration value as integer."""
        try:
            return self._config.getint(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def get_float(self, section, key, default=None):
        """Get configuration value as float."""
        try:
            return self._config.getfloat(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def get_boolean(self, section, key, default=None):
        """Get configuration value as boolean."""
        try:
            return self._config.getboolean(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def get_list(self, section, key, default=None):
        """Get a comma separated configuration value as a list.

        Entries are not stripped, so prefixes such as 'SMP ' keep their
        trailing space. Empty entries are dropped.
        """
        value = self.get(section, key)
        if value is None:
            return list(default or [])
        return [item for item in value.split(',') if item]

    def set(self, section, key, value):
        """Set configuration value."""
        if not self._config.has_section(section):
            self._config.add_section(section)

        self._config.set(section, key, str(value))
        self._save_config()

    def get_db_url(self):
        """Generate SQLAlchemy database URL."""
        engine = self.get('DATABASE', 'engine', 'postgresql')
        if engine.startswith('sqlite'):
            return f"{engine}:///{self.get('DATABASE', 'database', 'po_lifecycle.db')}"
        username = self.get('DATABASE', 'username', 'postgres')
        password = self.get('DATABASE', 'password', 'postgres')
        host = self.get('DATABASE', 'host', 'localhost')
        port = self.get('DATABASE', 'port', '5432')
        database = self.get('DATABASE', 'database', 'po_lifecycle')

        return f"{engine}://{username}:{password}@{host}:{port}/{database}"

    @property
    def log_config(self):
        """Get logging configuration."""
        return {
            'level': self.get('LOGGING', 'level', 'INFO'),
            'format': self.get('LOGGING', 'format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s'),
            'directory': self.get('LOGGING', 'directory', 'logs'),
            'max_size_mb': self.get_int('LOGGING', 'max_size_mb', 10),
            'backup_count': self.get_int('LOGGING', 'backup_count', 5),
            'console_output': self.get_boolean('LOGGING', 'console_output', True)
        }

    @property
    def batch_config(self):
        """Get batch processing configuration."""
        return {
            'chunk_size': self.get_int('BATCH_PROCESS', 'chunk_size', 500),
            'stop_on_error': self.get_boolean('BATCH_PROCESS', 'stop_on_error', False)
        }

    @property
    def business_rules(self):
        """Get business rules configuration."""
        return {
            'inline_inspection_window_days': self.get_int('BUSINESS_RULES', 'inline_inspection_window_days', 14),
            'final_inspection_window_days': self.get_int('BUSINESS_RULES', 'final_inspection_window_days', 7),
            'qa_test_window_days': self.get_int('BUSINESS_RULES', 'qa_test_window_days', 45),
            'initial_inspection_lead_days': self.get_int('BUSINESS_RULES', 'initial_inspection_lead_days', 45),
            'inline_inspection_lead_days': self.get_int('BUSINESS_RULES', 'inline_inspection_lead_days', 30),
            'final_inspection_lead_days': self.get_int('BUSINESS_RULES', 'final_inspection_lead_days', 14),
            'shipment_booking_lead_days': self.get_int('BUSINESS_RULES', 'shipment_booking_lead_days', 21),
            'otd_min_year': self.get_int('BUSINESS_RULES', 'otd_min_year', 2024),
            'excluded_program_prefixes': self.get_list('BUSINESS_RULES', 'excluded_program_prefixes', ['SMP ', '8X8 ']),
            'franchise_po_prefix': self.get('BUSINESS_RULES', 'franchise_po_prefix', '089'),
            'significant_variance_pct': self.get_float('BUSINESS_RULES', 'significant_variance_pct', 10.0),
            'projection_threshold_days': self.get_int('BUSINESS_RULES', 'projection_threshold_days', 90),
            'known_mto_collections': [
                name.strip().lower()
                for name in self.get_list('BUSINESS_RULES', 'known_mto_collections', [])
                if name.strip()
            ],
        }

# Create a global instance
config = Config()
