from cryptography import x509

from run import generate_self_signed_cert


def test_self_signed_cert(tmp_path):
    cert_file = tmp_path / "cert.pem"
    key_file = tmp_path / "key.pem"

    generate_self_signed_cert(str(cert_file), str(key_file), hosts=("localhost", "127.0.0.1", "127.0.0.1"))

    cert = x509.load_pem_x509_certificate(cert_file.read_bytes())
    san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    assert san.get_values_for_type(x509.DNSName) == ["localhost"]
    assert [str(ip) for ip in san.get_values_for_type(x509.IPAddress)] == ["127.0.0.1"]
    assert b"PRIVATE KEY" in key_file.read_bytes()


def test_existing_cert_is_kept(tmp_path):
    cert_file = tmp_path / "cert.pem"
    key_file = tmp_path / "key.pem"
    cert_file.write_text("existing")
    key_file.write_text("existing")

    generate_self_signed_cert(str(cert_file), str(key_file))
    assert cert_file.read_text() == "existing"
