from catrep.core.config import ReplicationConfig


def test_from_env_defaults():
    config = ReplicationConfig.from_env({})

    assert config.region == "us-east-1"
    assert config.partition_threshold == 10
    assert config.skip_archive is True
    assert config.prefix_separator == "|"
    assert config.table_import_status_table == "ddb_name_table_import_status"
    assert config.large_table_import_queue_url == ""


def test_from_env_reads_deployed_variable_names():
    config = ReplicationConfig.from_env(
        {
            "region": "eu-west-1",
            "source_glue_catalog_id": "111",
            "target_glue_catalog_id": "222",
            "database_prefix_list": "sales_|hr_",
            "partition_threshold": "25",
            "skip_archive": "false",
            "sns_topic_arn_gdc_replication_planner": "arn:planner",
            "dlq_url_sqs": "https://dlq",
            "s3_bucket_name": "bucket",
            "ddb_name_db_import_status": "db_status",
            "log_level": "debug",
        }
    )

    assert config.region == "eu-west-1"
    assert (config.source_catalog_id, config.target_catalog_id) == ("111", "222")
    assert config.database_prefixes == "sales_|hr_"
    assert config.partition_threshold == 25
    assert config.skip_archive is False
    assert config.export_topic_arn == "arn:planner"
    assert config.dead_letter_queue_url == "https://dlq"
    assert config.db_import_status_table == "db_status"
    assert config.log_level == "DEBUG"


def test_export_topic_prefers_export_variable():
    config = ReplicationConfig.from_env(
        {
            "sns_topic_arn_export_dbs_tables": "arn:export",
            "sns_topic_arn_gdc_replication_planner": "arn:planner",
        }
    )

    assert config.export_topic_arn == "arn:export"


def test_malformed_threshold_falls_back_to_default():
    assert ReplicationConfig.from_env({"partition_threshold": "ten"}).partition_threshold == 10


def test_with_overrides_ignores_none():
    config = ReplicationConfig(region="us-east-1")

    assert config.with_overrides(region=None).region == "us-east-1"
    assert config.with_overrides(region="eu-central-1").region == "eu-central-1"
