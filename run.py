import datetime
import ipaddress
import os
import socket

import uvicorn
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID


def get_lan_ip():
    try:
        # Connect to a public DNS server to determine the route
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        s.connect(("8.8.8.8", 80))
        ip = s.getsockname()[0]
        s.close()
        return ip
    except OSError:
        return "127.0.0.1"


def generate_self_signed_cert(cert_file="cert.pem", key_file="key.pem", hosts=("localhost", "127.0.0.1")):
    """Writes a one-year self-signed certificate so phones on the LAN can reach the broker over HTTPS."""
    if os.path.exists(cert_file) and os.path.exists(key_file):
        print("Using existing SSL certificates.")
        return

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    subject = issuer = x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "QR Login Broker (dev)"),
        x509.NameAttribute(NameOID.COMMON_NAME, "localhost"),
    ])

    alt_names = []
    for host in dict.fromkeys(hosts):
        try:
            alt_names.append(x509.IPAddress(ipaddress.ip_address(host)))
        except ValueError:
            alt_names.append(x509.DNSName(host))

    now = datetime.datetime.now(datetime.timezone.utc)
    cert = x509.CertificateBuilder().subject_name(subject).issuer_name(issuer).public_key(
        key.public_key()
    ).serial_number(
        x509.random_serial_number()
    ).not_valid_before(
        now
    ).not_valid_after(
        now + datetime.timedelta(days=365)
    ).add_extension(
        x509.SubjectAlternativeName(alt_names),
        critical=False,
    ).sign(key, hashes.SHA256())

    with open(key_file, "wb") as f:
        f.write(key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        ))
    with open(cert_file, "wb") as f:
        f.write(cert.public_bytes(serialization.Encoding.PEM))

    print("Certificates generated.")


def main():
    lan_ip = get_lan_ip()
    port = int(os.getenv("PORT", "8000"))

    cert_file = "cert.pem"
    key_file = "key.pem"

    generate_self_signed_cert(cert_file, key_file, hosts=("localhost", "127.0.0.1", lan_ip))

    print("\n" + "=" * 60)
    print("QR LOGIN BROKER STARTING")
    print(f"LAN URL:  https://{lan_ip}:{port}")
    print(f"Local:    https://127.0.0.1:{port}")
    print("-" * 60)
    print("NOTE: browsers will warn about the self-signed certificate.")
    print("=" * 60 + "\n")

    uvicorn.run(
        "qrlogin.main:app",
        host="0.0.0.0",
        port=port,
        ssl_keyfile=key_file,
        ssl_certfile=cert_file,
    )


if __name__ == "__main__":
    main()
